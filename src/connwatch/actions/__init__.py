"""Response actions applied to newly observed connections."""
