# seed.py
# CLI commands to seed the database with demo data and manage users.

from flask import current_app
from flask.cli import with_appcontext
import click

from certchain.models import db, User, UserRole, Certificate, CertificateStatus

SAMPLE_CERTIFICATES = [
    {'cert_id': 'CERT_2024_001', 'name': 'Arun Kumar', 'college': 'Anna University',
     'department': 'Computer Science Engineering', 'start_year': '2020', 'end_year': '2024'},
    {'cert_id': 'CERT_2024_002', 'name': 'Priya Sharma', 'college': 'Anna University',
     'department': 'Mechanical Engineering', 'start_year': '2020', 'end_year': '2024'},
    {'cert_id': 'CERT_2024_003', 'name': 'Dhivya Raman', 'college': 'PSG College of Technology',
     'department': 'Electronics and Communication Engineering', 'start_year': '2019', 'end_year': '2023'},
]

def seed_admin():
    if not User.query.filter_by(username='admin').first():
        admin = User(username='admin', role=UserRole.ADMIN)
        admin.set_password(current_app.config['ADMIN_BOOTSTRAP_PASSWORD'])
        db.session.add(admin)
        db.session.commit()
    print("✅ Admin user seeded.")

def seed_certificates():
    for cert_data in SAMPLE_CERTIFICATES:
        if not Certificate.query.filter_by(cert_id=cert_data['cert_id']).first():
            db.session.add(Certificate(created_by='admin', status=CertificateStatus.ACTIVE, **cert_data))
    db.session.commit()
    print("✅ Certificates seeded.")

@click.command('seed-db')
@with_appcontext
def seed_command():
    """Drops and recreates all tables, then loads demo data."""
    print("Starting database seeding process...")
    db.drop_all()
    db.create_all()
    print("Database tables dropped and recreated.")

    seed_admin()
    seed_certificates()

    print("🎉 Database seeding completed successfully! 🎉")

@click.command('create-user')
@click.argument('username')
@click.option('--role', type=click.Choice([r.value for r in UserRole]), default=UserRole.UPLOADER.value)
@click.password_option()
@with_appcontext
def create_user_command(username, role, password):
    """Creates a user from the command line."""
    db.create_all()
    if User.query.filter_by(username=username).first():
        raise click.ClickException(f"User '{username}' already exists.")
    user = User(username=username, role=UserRole(role))
    user.set_password(password)
    db.session.add(user)
    db.session.commit()
    print(f"✅ User '{username}' created with role {role}.")
