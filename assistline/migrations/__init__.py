from .runner import apply_migrations, upgrade_to_head

__all__ = ["apply_migrations", "upgrade_to_head"]
