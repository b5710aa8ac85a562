"""Walk-in queue core: gap-free ticket numbering and lifecycle management."""
