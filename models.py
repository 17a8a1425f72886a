# models.py

import uuid
from flask_sqlalchemy import SQLAlchemy
from werkzeug.security import generate_password_hash, check_password_hash
from datetime import datetime

db = SQLAlchemy()


def _new_id():
    return uuid.uuid4().hex


class User(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    mobile_number = db.Column(db.String(20), unique=True, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    customer = db.relationship('Customer', backref='user', uselist=False, lazy=True, cascade='all, delete-orphan')


class OTPCode(db.Model):
    """One pending OTP per phone number; re-sending overwrites it."""
    phone_number = db.Column(db.String(20), primary_key=True)
    otp = db.Column(db.String(6), nullable=False)
    used = db.Column(db.Boolean, default=False, nullable=False)
    expires_at = db.Column(db.DateTime, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    verified_at = db.Column(db.DateTime)


class Customer(db.Model):
    id = db.Column(db.String(32), primary_key=True, default=_new_id)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'))

    # Document sections
    personal_info = db.Column(db.JSON, default=dict)
    application = db.Column(db.JSON, default=dict)
    documents = db.Column(db.JSON, default=dict)
    kyc = db.Column(db.JSON, default=dict)
    recommendations = db.Column(db.JSON, default=list)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'userId': self.user_id,
            'personalInfo': self.personal_info or {},
            'application': self.application or {'status': 'draft'},
            'documents': self.documents or {'submitted': []},
            'kyc': self.kyc or {},
            'recommendations': self.recommendations or [],
            'createdAt': self.created_at.isoformat() if self.created_at else None,
            'updatedAt': self.updated_at.isoformat() if self.updated_at else None,
        }


class Lender(db.Model):
    id = db.Column(db.String(32), primary_key=True, default=_new_id)
    name = db.Column(db.String(200), nullable=False, index=True)
    is_active = db.Column(db.Boolean, default=True)
    data = db.Column(db.JSON, default=dict)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self):
        return {
            **(self.data or {}),
            'id': self.id,
            'name': self.name,
            'isActive': self.is_active,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
            'updatedAt': self.updated_at.isoformat() if self.updated_at else None,
        }


class University(db.Model):
    id = db.Column(db.String(32), primary_key=True, default=_new_id)
    name = db.Column(db.String(255), nullable=False, index=True)
    country = db.Column(db.String(100))
    is_active = db.Column(db.Boolean, default=True)
    data = db.Column(db.JSON, default=dict)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self):
        return {
            **(self.data or {}),
            'id': self.id,
            'name': self.name,
            'country': self.country or '',
            'isActive': self.is_active,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
            'updatedAt': self.updated_at.isoformat() if self.updated_at else None,
        }


class Admin(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)

    def set_password(self, password):
        """Set password hash"""
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        """Check password against hash"""
        return check_password_hash(self.password_hash, password)
