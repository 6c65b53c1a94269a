"""Answer rendering."""
