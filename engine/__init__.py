"""Timing prediction, next-tool suggestions and preset matching for tool responses."""
