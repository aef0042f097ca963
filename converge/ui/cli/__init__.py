"""click sub-command groups registered on the root CLI."""
