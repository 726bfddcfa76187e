"""Git diff parsing and working-tree change detection."""
