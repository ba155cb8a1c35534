"""Backend for a private-chef booking marketplace."""
