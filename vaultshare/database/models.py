import enum
import uuid
from datetime import datetime, timezone

from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import text

db = SQLAlchemy()


def utcnow() -> datetime:
    """Naive UTC timestamp, the representation every DateTime column uses."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _uuid() -> str:
    return str(uuid.uuid4())


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class DeviceRequestStatus(enum.Enum):
    PENDING = 'pending'
    APPROVED = 'approved'
    REJECTED = 'rejected'


class DeviceStatus(enum.Enum):
    ACTIVE = 'active'
    REVOKED = 'revoked'


class User(db.Model):
    __tablename__ = 'users'
    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    email = db.Column(db.String(255), unique=True, nullable=False)
    password_hash = db.Column(db.String(64), nullable=False)
    password_salt = db.Column(db.String(32), nullable=False)
    is_admin = db.Column(db.Boolean, nullable=False, default=False)
    unlimited_upload = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    sessions = db.relationship('Session', backref='user', lazy=True, cascade='all, delete-orphan')
    devices = db.relationship('TrustedDevice', backref='user', lazy=True, cascade='all, delete-orphan')
    device_requests = db.relationship('PendingDeviceRequest', backref='requester', lazy=True,
                                      cascade='all, delete-orphan')

    def to_dict(self):
        return {
            'id': self.id,
            'email': self.email,
            'is_admin': bool(self.is_admin),
            'unlimited_upload': bool(self.unlimited_upload),
            'created_at': _iso(self.created_at),
        }


class Session(db.Model):
    __tablename__ = 'sessions'
    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    user_id = db.Column(db.String(36), db.ForeignKey('users.id'), nullable=False, index=True)
    token_hash = db.Column(db.String(64), unique=True, nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    expires_at = db.Column(db.DateTime, nullable=False)


class PendingDeviceRequest(db.Model):
    __tablename__ = 'pending_devices'
    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    device_name = db.Column(db.String(255), nullable=False)
    device_fingerprint = db.Column(db.String(255), nullable=False, index=True)
    requested_by = db.Column(db.String(36), db.ForeignKey('users.id'), nullable=False)
    status = db.Column(
        db.Enum(DeviceRequestStatus, name='device_request_status', values_callable=_enum_values),
        nullable=False,
        default=DeviceRequestStatus.PENDING,
    )
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    # At most one pending request per fingerprint
    __table_args__ = (
        db.Index(
            'uq_pending_devices_fingerprint_pending', 'device_fingerprint', unique=True,
            sqlite_where=text("status = 'pending'"),
            postgresql_where=text("status = 'pending'"),
        ),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'device_name': self.device_name,
            'device_fingerprint': self.device_fingerprint,
            'requested_by': self.requested_by,
            'requester_email': self.requester.email if self.requester else None,
            'status': self.status.value,
            'created_at': _iso(self.created_at),
        }


class TrustedDevice(db.Model):
    __tablename__ = 'trusted_devices'
    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    user_id = db.Column(db.String(36), db.ForeignKey('users.id'), nullable=False, index=True)
    device_name = db.Column(db.String(255), nullable=False)
    token_hash = db.Column(db.String(64), unique=True, nullable=False)
    device_fingerprint = db.Column(db.String(255), nullable=False, index=True)
    status = db.Column(
        db.Enum(DeviceStatus, name='device_status', values_callable=_enum_values),
        nullable=False,
        default=DeviceStatus.ACTIVE,
    )
    last_used = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    # At most one active device per fingerprint
    __table_args__ = (
        db.Index(
            'uq_trusted_devices_fingerprint_active', 'device_fingerprint', unique=True,
            sqlite_where=text("status = 'active'"),
            postgresql_where=text("status = 'active'"),
        ),
    )

    def to_dict(self, include_owner: bool = False):
        data = {
            'id': self.id,
            'user_id': self.user_id,
            'device_name': self.device_name,
            'device_fingerprint': self.device_fingerprint,
            'status': self.status.value,
            'last_used': _iso(self.last_used),
            'created_at': _iso(self.created_at),
        }
        if include_owner:
            data['user_email'] = self.user.email if self.user else None
        return data


class VaultFile(db.Model):
    __tablename__ = 'vault_files'
    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    # Weak reference: artifacts outlive a deleted owner until the sweep reclaims them
    user_id = db.Column(db.String(36), nullable=False, index=True)
    blob_key = db.Column(db.String(64), unique=True, nullable=False)
    original_name = db.Column(db.String(255), nullable=False)
    file_size = db.Column(db.BigInteger, nullable=False)
    mime_type = db.Column(db.String(255), nullable=False, default='application/octet-stream')
    download_count = db.Column(db.Integer, nullable=False, default=0)
    max_downloads = db.Column(db.Integer, nullable=False, default=0)
    expires_at = db.Column(db.DateTime, nullable=False, index=True)
    iv = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'original_name': self.original_name,
            'file_size': self.file_size,
            'mime_type': self.mime_type,
            'download_count': self.download_count,
            'max_downloads': self.max_downloads,
            'expires_at': _iso(self.expires_at),
            'created_at': _iso(self.created_at),
        }


class UploadLogEntry(db.Model):
    __tablename__ = 'upload_log'
    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    device_id = db.Column(db.String(36), nullable=False)
    uploaded_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        db.Index('ix_upload_log_device_uploaded', 'device_id', 'uploaded_at'),
    )


class FileType(db.Model):
    __tablename__ = 'file_type_whitelist'
    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    extension = db.Column(db.String(32), unique=True, nullable=False)
    category = db.Column(db.String(64), nullable=False, default='other')
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    def to_dict(self):
        return {
            'extension': self.extension,
            'category': self.category,
            'is_active': bool(self.is_active),
        }


def _iso(value):
    return value.isoformat() + 'Z' if value else None
