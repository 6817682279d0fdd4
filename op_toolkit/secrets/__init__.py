"""Secret resolution: domain clients and workflows."""
