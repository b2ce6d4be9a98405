"""Application services wired around the assignment core."""
