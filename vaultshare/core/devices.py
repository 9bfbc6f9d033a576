"""
Device trust workflow.

Two independent state machines per fingerprint:

* access requests: ``pending -> approved | rejected`` (both terminal)
* trusted devices: ``active -> revoked`` (terminal)

Partial unique indexes keep at most one ``pending`` request and one ``active``
device per fingerprint; losing a concurrent race surfaces as a conflict error.
Device tokens are handed out once, by :meth:`DeviceTrustManager.resolve_request`,
and only their hash is stored.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Union

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..database.models import (
    DeviceRequestStatus, DeviceStatus, PendingDeviceRequest, TrustedDevice, User
)
from ..utils.logging_config import log_audit_event, log_security_event
from ..utils.unified_error_handler import (
    AuthenticationError, AuthorizationError, ConflictError, DatabaseError, NotFoundError
)
from .context import VaultContext
from .credentials import generate_device_token, generate_id, hash_token
from .fingerprint import generate_device_fingerprint, parse_user_agent

logger = logging.getLogger(__name__)


REQUEST_TRANSITIONS = {
    DeviceRequestStatus.PENDING: frozenset({DeviceRequestStatus.APPROVED, DeviceRequestStatus.REJECTED}),
    DeviceRequestStatus.APPROVED: frozenset(),
    DeviceRequestStatus.REJECTED: frozenset(),
}

DEVICE_TRANSITIONS = {
    DeviceStatus.ACTIVE: frozenset({DeviceStatus.REVOKED}),
    DeviceStatus.REVOKED: frozenset(),
}


def _require_exhaustive(table, enum_cls):
    missing = set(enum_cls) - set(table)
    if missing:
        raise RuntimeError(f"Transition table for {enum_cls.__name__} misses {sorted(m.value for m in missing)}")


_require_exhaustive(REQUEST_TRANSITIONS, DeviceRequestStatus)
_require_exhaustive(DEVICE_TRANSITIONS, DeviceStatus)


def can_transition(current, target) -> bool:
    table = REQUEST_TRANSITIONS if isinstance(current, DeviceRequestStatus) else DEVICE_TRANSITIONS
    return target in table[current]


@dataclass(frozen=True)
class DeviceContext:
    """Identity of a caller that authenticated with a device token."""
    device_id: str
    user_id: str
    device_name: str
    unlimited_upload: bool


@dataclass(frozen=True)
class DeviceDecision:
    """Outcome of resolving an access request.

    ``device_token`` is only set on approval and exists nowhere else: it is
    never persisted and cannot be fetched again.
    """
    request_id: str
    status: DeviceRequestStatus
    device_name: str
    device_id: Optional[str] = None
    device_token: Optional[str] = None


Actor = Union[User, DeviceContext]


class DeviceTrustManager:
    def __init__(self, ctx: VaultContext):
        self.ctx = ctx
        self.db = ctx.session

    # ------------------------------------------------------------------
    # Access requests
    # ------------------------------------------------------------------

    def request_access(self, user_email: str, device_name: Optional[str] = None,
                       fingerprint: Optional[str] = None, user_agent: str = '',
                       client_hints: str = '') -> PendingDeviceRequest:
        """File a pending trust request for a device on behalf of ``user_email``."""
        user = self.db.query(User).filter_by(email=user_email.strip().lower()).first()
        if user is None:
            raise NotFoundError('User not found', error_code='USER_NOT_FOUND')

        if not fingerprint:
            fingerprint = generate_device_fingerprint(user_agent, client_hints)

        if self._pending_for(fingerprint) is not None:
            raise ConflictError('Device request already pending', error_code='REQUEST_EXISTS')

        if self._active_for(fingerprint) is not None:
            raise ConflictError('Device already registered', error_code='DEVICE_REGISTERED')

        request = PendingDeviceRequest(
            id=generate_id(),
            device_name=device_name or parse_user_agent(user_agent),
            device_fingerprint=fingerprint,
            requested_by=user.id,
            status=DeviceRequestStatus.PENDING,
            created_at=self.ctx.now(),
        )
        try:
            # Resolved requests for this fingerprint are history once a new one arrives
            self.db.query(PendingDeviceRequest).filter(
                PendingDeviceRequest.device_fingerprint == fingerprint,
                PendingDeviceRequest.status.in_([DeviceRequestStatus.APPROVED, DeviceRequestStatus.REJECTED]),
            ).delete(synchronize_session=False)
            self.db.add(request)
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise ConflictError('Device request already pending', error_code='REQUEST_EXISTS') from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to create device request: {e}")
            raise DatabaseError('Failed to create device request') from e

        log_security_event('device_access_requested',
                           f"Device access requested for {user.email}: {request.device_name}",
                           level=logging.INFO, user_id=user.id)
        return request

    def list_pending(self, actor: User) -> list[PendingDeviceRequest]:
        self._require_admin(actor)
        return (self.db.query(PendingDeviceRequest)
                .filter_by(status=DeviceRequestStatus.PENDING)
                .order_by(PendingDeviceRequest.created_at.desc())
                .all())

    def resolve_request(self, request_id: str, approved: bool, actor: User) -> DeviceDecision:
        """Approve or reject a pending request.

        Approval mints the device token, drops any revoked row for the same
        fingerprint so it can be trusted again, and binds the new active
        device to the original requester.
        """
        self._require_admin(actor)

        request = self.db.get(PendingDeviceRequest, request_id)
        if request is None:
            raise NotFoundError('Pending device not found', resource_type='device_request',
                                resource_id=request_id)

        target = DeviceRequestStatus.APPROVED if approved else DeviceRequestStatus.REJECTED
        if not can_transition(request.status, target):
            raise ConflictError('Device request already processed', error_code='ALREADY_PROCESSED')

        fingerprint = request.device_fingerprint
        device_name = request.device_name
        requested_by = request.requested_by

        try:
            claimed = self.db.query(PendingDeviceRequest).filter(
                PendingDeviceRequest.id == request_id,
                PendingDeviceRequest.status == DeviceRequestStatus.PENDING,
            ).update({PendingDeviceRequest.status: target}, synchronize_session=False)
            if claimed == 0:
                self.db.rollback()
                raise ConflictError('Device request already processed', error_code='ALREADY_PROCESSED')

            if not approved:
                self.db.commit()
                self.db.expire(request)
                log_security_event('device_rejected', f"Device request {request_id} rejected",
                                   level=logging.INFO, user_id=actor.id)
                return DeviceDecision(request_id=request_id, status=target, device_name=device_name)

            self.db.query(TrustedDevice).filter(
                TrustedDevice.device_fingerprint == fingerprint,
                TrustedDevice.status == DeviceStatus.REVOKED,
            ).delete(synchronize_session=False)

            token, token_hash = generate_device_token()
            device = TrustedDevice(
                id=generate_id(),
                user_id=requested_by,
                device_name=device_name,
                token_hash=token_hash,
                device_fingerprint=fingerprint,
                status=DeviceStatus.ACTIVE,
                created_at=self.ctx.now(),
            )
            self.db.add(device)
            self.db.commit()
            self.db.expire(request)
        except IntegrityError as e:
            self.db.rollback()
            raise ConflictError('Device already registered', error_code='DEVICE_REGISTERED') from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to resolve device request {request_id}: {e}")
            raise DatabaseError('Failed to register device') from e

        log_security_event('device_approved', f"Device {device.id} approved for user {requested_by}",
                           level=logging.INFO, user_id=actor.id, device_id=device.id)
        return DeviceDecision(
            request_id=request_id,
            status=target,
            device_name=device_name,
            device_id=device.id,
            device_token=token,
        )

    # ------------------------------------------------------------------
    # Trusted devices
    # ------------------------------------------------------------------

    def authenticate(self, token: Optional[str]) -> DeviceContext:
        """Admission gate for uploads: resolve an active device by token."""
        if not token:
            raise AuthenticationError('Device token required', error_code='DEVICE_TOKEN_REQUIRED')

        device = self.db.query(TrustedDevice).filter_by(
            token_hash=hash_token(token), status=DeviceStatus.ACTIVE
        ).first()
        if device is None:
            raise AuthenticationError('Invalid device token', error_code='INVALID_DEVICE_TOKEN')

        owner = self.db.get(User, device.user_id)
        if owner is None:
            raise AuthenticationError('Invalid device token', error_code='INVALID_DEVICE_TOKEN')

        context = DeviceContext(
            device_id=device.id,
            user_id=device.user_id,
            device_name=device.device_name,
            unlimited_upload=bool(owner.unlimited_upload),
        )
        self._touch(device)
        return context

    def list_devices(self, actor: User) -> list[TrustedDevice]:
        query = self.db.query(TrustedDevice)
        if actor.is_admin:
            query = query.filter_by(status=DeviceStatus.ACTIVE)
        else:
            query = query.filter_by(user_id=actor.id)
        return query.order_by(TrustedDevice.created_at.desc()).all()

    def revoke(self, device_id: str, actor: Actor) -> bool:
        """Revoke a trusted device; returns False when it was already revoked.

        Admins may revoke any device. A device-token caller may revoke devices
        belonging to its own user.
        """
        device = self.db.get(TrustedDevice, device_id)
        if device is None:
            raise NotFoundError('Device not found', resource_type='device', resource_id=device_id)

        if isinstance(actor, DeviceContext):
            if device.user_id != actor.user_id:
                raise AuthorizationError('You can only revoke your own devices')
            actor_id = actor.device_id
        else:
            self._require_admin(actor)
            actor_id = actor.id

        if not can_transition(device.status, DeviceStatus.REVOKED):
            return False

        try:
            changed = self.db.query(TrustedDevice).filter(
                TrustedDevice.id == device_id,
                TrustedDevice.status == DeviceStatus.ACTIVE,
            ).update({TrustedDevice.status: DeviceStatus.REVOKED}, synchronize_session=False)
            self.db.commit()
            self.db.expire(device)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to revoke device {device_id}: {e}")
            raise DatabaseError('Failed to revoke device') from e

        if changed:
            log_audit_event('revoke', f"device:{device_id}", f"Device {device_id} revoked",
                            actor_id=actor_id)
        return bool(changed)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _pending_for(self, fingerprint: str) -> Optional[PendingDeviceRequest]:
        return self.db.query(PendingDeviceRequest).filter_by(
            device_fingerprint=fingerprint, status=DeviceRequestStatus.PENDING
        ).first()

    def _active_for(self, fingerprint: str) -> Optional[TrustedDevice]:
        return self.db.query(TrustedDevice).filter_by(
            device_fingerprint=fingerprint, status=DeviceStatus.ACTIVE
        ).first()

    def _touch(self, device: TrustedDevice) -> None:
        """Record ``last_used``; failure is logged, never raised."""
        try:
            device.last_used = self.ctx.now()
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.warning(f"Failed to update last_used for device {device.id}: {e}")

    @staticmethod
    def _require_admin(actor: User) -> None:
        if not getattr(actor, 'is_admin', False):
            raise AuthorizationError('Admin access required')
