"""Enterprise Chat Core."""
