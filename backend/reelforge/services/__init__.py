"""Pipeline services: variants, lifecycle, video admission and assembly."""
