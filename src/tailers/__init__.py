"""Follow several growing log files and print new lines as they are written."""
