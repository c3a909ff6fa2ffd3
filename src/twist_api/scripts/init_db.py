"""Create all tables directly from the ORM metadata (development only)."""

from twist_api.db.session import create_tables, engine

if __name__ == "__main__":
    create_tables()
    print(f"Database initialized at {engine.url.render_as_string(hide_password=True)}.")
