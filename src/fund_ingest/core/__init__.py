"""Error taxonomy, configuration and logging shared by all layers."""
