"""SQL safety validation and lightweight query introspection."""
