"""Foreign extension API: C prototypes and engine implementations."""
