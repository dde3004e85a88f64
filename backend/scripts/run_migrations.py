from app.core.config import settings
from app.services.db import apply_migrations, get_conn


def main():
    with get_conn(settings.DB_PATH) as conn:
        applied = apply_migrations(conn, settings.MIGRATIONS_DIR)
    for name in applied:
        print("✅ applied", name)
    if not applied:
        print("nothing to apply;", settings.DB_PATH, "is up to date")

if __name__ == "__main__":
    main()
