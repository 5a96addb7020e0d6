"""Authentication and authorization for the RestoMap API."""
