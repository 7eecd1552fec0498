"""Pure domain layer: DTOs, sign conventions, aging and the clock."""
