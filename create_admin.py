# create_admin.py

import sys

import config
from app import app, db
from models import Admin
from services import university_service


def create_admin(username=None, password=None):
    """Create the admin account if it does not exist yet; returns it either way"""
    username = username or config.ADMIN_USERNAME
    password = password or config.ADMIN_PASSWORD

    with app.app_context():
        existing_admin = Admin.query.filter_by(username=username).first()
        if existing_admin:
            print(f"Admin user '{username}' already exists!")
            return existing_admin

        new_admin = Admin(username=username)
        new_admin.set_password(password)
        db.session.add(new_admin)
        db.session.commit()

        print("Admin user created successfully!")
        print(f"Username: {username}")
        return new_admin


def seed_universities(csv_path):
    """Load a university CSV without AI enrichment"""
    with open(csv_path, encoding='utf-8-sig') as f:
        content = f.read()
    with app.app_context():
        result = university_service.import_csv(content, enrich=False)
    print(f"Universities added: {result['success']}, failed: {result['failed']}")
    return result


if __name__ == '__main__':
    create_admin()
    if len(sys.argv) > 1:
        seed_universities(sys.argv[1])
