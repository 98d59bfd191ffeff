"""Language-model providers wrapped by Glossa agents."""
