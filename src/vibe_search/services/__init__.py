"""Service layer for answer extraction."""
