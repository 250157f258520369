#!/usr/bin/env python3
"""
Ignyt - Create Admin User
Run this script to create the first admin user.

Usage:
    python scripts/create_admin.py

Or with environment variables:
    ADMIN_USERNAME=admin ADMIN_EMAIL=admin@example.com ADMIN_PASSWORD=securepass123 python scripts/create_admin.py
"""
import os
import sys
import secrets
import string
import getpass

# Add parent directory to path so we can import the app
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dotenv import load_dotenv
load_dotenv()

from app import create_app
from app.models.db_models import UserRole
from app.routes.auth import validate_password
from app.services.db_service import DataService, create_admin_user


def generate_password(length=16):
    """Generate a random password with at least one letter and one digit"""
    alphabet = string.ascii_letters + string.digits
    while True:
        password = ''.join(secrets.choice(alphabet) for _ in range(length))
        if validate_password(password)[0]:
            return password


def main():
    app = create_app()
    data_service = DataService()

    with app.app_context():
        counts = data_service.count_users_by_role()
        if counts.get(UserRole.ADMIN):
            print(f"\n{counts[UserRole.ADMIN]} admin user(s) already exist.")
            if input("Create another admin? (y/N): ").strip().lower() != 'y':
                print("Aborted.")
                return

        username = os.environ.get('ADMIN_USERNAME') or input("Admin username: ").strip()
        email = os.environ.get('ADMIN_EMAIL') or input("Admin email: ").strip()
        password = os.environ.get('ADMIN_PASSWORD')

        if not username:
            print("Error: Username required")
            return
        if not email or '@' not in email:
            print("Error: Valid email required")
            return
        if data_service.get_user_by_username(username) or data_service.get_user_by_email(email):
            print("Error: A user with that username or email already exists")
            return

        if not password:
            if input("Generate password? (Y/n): ").strip().lower() != 'n':
                password = generate_password()
                print(f"\nGenerated password: {password}")
                print("   (Save this somewhere safe!)\n")
            else:
                password = getpass.getpass("Enter password: ")
                if password != getpass.getpass("Confirm password: "):
                    print("Error: Passwords don't match")
                    return

        is_valid, error_msg = validate_password(password)
        if not is_valid:
            print(f"Error: {error_msg}")
            return

        user = create_admin_user(username, email, 'Admin', password)
        data_service.save_user(user)

        print(f"\nAdmin user created: {user.username} <{user.email}>\n")


if __name__ == '__main__':
    main()
