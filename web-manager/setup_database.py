#!/usr/bin/env python3
"""
Database setup script for DockLite
Creates the tables, the default admin user and the site storage root.
"""
import sys

from app import create_app
from models import db, User, create_default_admin
from site_helpers import ensure_all_user_folders, ensure_base_site_directories


def setup_db():
    app = create_app()
    with app.app_context():
        print("Initializing database...")
        try:
            db.create_all()
            print("Database tables created successfully.")

            if create_default_admin():
                print("Default admin user created.")
                print("   Username: admin")
                print("   Password: admin")
                print("   Please change the default password immediately after first login.")
            else:
                print("Users already exist, skipping default admin.")

            base_dir = ensure_base_site_directories()
            print(f"Site storage ready at {base_dir}")
            result = ensure_all_user_folders(User.query.all())
            print(f"User folders: {result['ok']} OK, {result['failed']} failed")

            print("\nDatabase setup completed successfully!")
            return True
        except Exception as e:
            print(f"\nAn error occurred during database setup: {e}")
            db.session.rollback()
            return False


if __name__ == '__main__':
    if not setup_db():
        print("\nDatabase setup failed!")
        sys.exit(1)
