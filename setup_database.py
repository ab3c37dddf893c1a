#!/usr/bin/env python
"""
Database setup script for the MicroLend marketplace
Run this to create migrations and set up the database manually if needed.
"""
import os
import django
from django.core.management import execute_from_command_line

if __name__ == '__main__':
    os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'microlend.settings')
    django.setup()

    print("🔄 Setting up database...")

    print("📝 Checking for model changes...")
    execute_from_command_line(['manage.py', 'makemigrations', 'users', 'loans', 'crowdfunding'])

    print("🗄️  Applying migrations...")
    execute_from_command_line(['manage.py', 'migrate'])

    print("🌱 Seeding database...")
    execute_from_command_line(['manage.py', 'seed_data', '--with-loan', '--with-fundraiser'])

    print("✅ Database setup complete!")
