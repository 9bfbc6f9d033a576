from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..core.credentials import generate_id, generate_salt, hash_password
from ..utils.unified_error_handler import ConflictError, DatabaseError, NotFoundError, ValidationError
from .models import (
    db, FileType, PendingDeviceRequest, Session, TrustedDevice, UploadLogEntry, User, VaultFile
)

DEFAULT_FILE_TYPES = (
    ('.pdf', 'document'), ('.doc', 'document'), ('.docx', 'document'), ('.txt', 'document'),
    ('.md', 'document'), ('.rtf', 'document'), ('.odt', 'document'),
    ('.xls', 'spreadsheet'), ('.xlsx', 'spreadsheet'), ('.csv', 'spreadsheet'), ('.ods', 'spreadsheet'),
    ('.ppt', 'presentation'), ('.pptx', 'presentation'), ('.odp', 'presentation'),
    ('.jpg', 'image'), ('.jpeg', 'image'), ('.png', 'image'), ('.gif', 'image'), ('.webp', 'image'),
    ('.svg', 'image'), ('.heic', 'image'),
    ('.mp3', 'audio'), ('.wav', 'audio'), ('.m4a', 'audio'),
    ('.mp4', 'video'), ('.mov', 'video'), ('.webm', 'video'),
    ('.zip', 'archive'), ('.7z', 'archive'), ('.tar', 'archive'), ('.gz', 'archive'),
    ('.json', 'data'), ('.xml', 'data'),
)


def _commit(message):
    try:
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        raise DatabaseError(message) from e


# Users

def get_user_by_email(email):
    return User.query.filter_by(email=email.strip().lower()).first()


def get_user_by_id(user_id):
    return db.session.get(User, user_id)


def count_users():
    return User.query.count()


def list_users():
    return User.query.order_by(User.created_at.desc()).all()


def add_user(email, password, is_admin=None, unlimited_upload=False):
    """Create a user. With ``is_admin=None`` the very first account becomes admin."""
    email = email.strip().lower()
    if get_user_by_email(email):
        raise ConflictError('Email already registered', error_code='EMAIL_EXISTS')

    if is_admin is None:
        is_admin = count_users() == 0

    salt = generate_salt()
    user = User(
        id=generate_id(),
        email=email,
        password_hash=hash_password(password, salt),
        password_salt=salt,
        is_admin=bool(is_admin),
        unlimited_upload=bool(unlimited_upload),
    )
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError as e:
        db.session.rollback()
        raise ConflictError('Email already registered', error_code='EMAIL_EXISTS') from e
    except SQLAlchemyError as e:
        db.session.rollback()
        raise DatabaseError('Failed to create user') from e
    return user


def update_user_flags(user_id, unlimited_upload=None):
    user = get_user_by_id(user_id)
    if user is None:
        raise NotFoundError('User not found', error_code='USER_NOT_FOUND')

    if unlimited_upload is None:
        raise ValidationError('No valid fields to update', error_code='NO_UPDATES')

    user.unlimited_upload = bool(unlimited_upload)
    _commit('Failed to update user')
    return user


def delete_user(user_id):
    """Delete a user with their sessions, devices and device requests.

    Vault files are left in place; the sweep reclaims them at expiry.
    """
    user = get_user_by_id(user_id)
    if user is None:
        raise NotFoundError('User not found', error_code='USER_NOT_FOUND')
    db.session.delete(user)
    _commit('Failed to delete user')


# File type allow-list

def list_file_types(include_inactive=False):
    query = FileType.query
    if not include_inactive:
        query = query.filter_by(is_active=True)
    return query.order_by(FileType.category, FileType.extension).all()


def normalize_extension(extension):
    extension = (extension or '').strip().lower()
    if extension and not extension.startswith('.'):
        extension = '.' + extension
    return extension


def add_file_type(extension, category='other'):
    """Allow an extension, reactivating it if it was disabled."""
    extension = normalize_extension(extension)
    file_type = FileType.query.filter_by(extension=extension).first()
    if file_type is None:
        file_type = FileType(extension=extension, category=category or 'other', is_active=True)
        db.session.add(file_type)
    else:
        file_type.is_active = True
        if category:
            file_type.category = category
    _commit('Failed to save file type')
    return file_type


def deactivate_file_type(extension):
    extension = normalize_extension(extension)
    file_type = FileType.query.filter_by(extension=extension).first()
    if file_type is None:
        raise NotFoundError('File type not found', resource_type='file_type', resource_id=extension)
    file_type.is_active = False
    _commit('Failed to update file type')
    return file_type


def seed_default_file_types():
    """Insert the default allow-list; existing rows are left untouched. Returns how many were added."""
    existing = {row.extension for row in db.session.query(FileType.extension).all()}
    added = 0
    for extension, category in DEFAULT_FILE_TYPES:
        if extension not in existing:
            db.session.add(FileType(extension=extension, category=category, is_active=True))
            added += 1
    _commit('Failed to seed file types')
    return added


def get_database_stats():
    """Get statistics about the database."""
    return {
        'users': User.query.count(),
        'sessions': Session.query.count(),
        'pending_devices': PendingDeviceRequest.query.count(),
        'trusted_devices': TrustedDevice.query.count(),
        'vault_files': VaultFile.query.count(),
        'upload_log': UploadLogEntry.query.count(),
        'file_types': FileType.query.count(),
    }
