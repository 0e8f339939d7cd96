"""OS-specific enumeration backends."""
