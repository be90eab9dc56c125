"""Grand Central Terminus: dialogue traversal and evidence-based skill inference."""
