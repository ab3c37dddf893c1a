from typing import Optional, Dict, Any, List
import logging
from django.contrib.auth import authenticate
from django.db import transaction
from django.utils import timezone
from rest_framework.authtoken.models import Token
from .repositories import UserRepository, UserProfileRepository, VerificationRepository
from .models import User, VerificationRequest
from apps.common.permissions import ROLE_USER, ROLE_DONOR, ROLE_ADMIN, is_admin
from apps.common.exceptions import (
    ValidationError, RolePermissionError, UserNotFoundError,
    VerificationRequestNotFoundError, InvalidVerificationStateError
)

logger = logging.getLogger('apps.users')

SELF_REGISTER_ROLES = (ROLE_USER, ROLE_DONOR)

# Statuses from which a user may (re)submit verification documents
SUBMITTABLE_STATUSES = (
    User.VERIFICATION_NOT_STARTED,
    User.VERIFICATION_REJECTED,
    User.VERIFICATION_ADDITIONAL_INFO,
)


class UserService:
    def __init__(self):
        self.user_repo = UserRepository()
        self.profile_repo = UserProfileRepository()

    def register_user(self, user_data: Dict[str, Any]) -> User:
        profile_data = user_data.pop('profile', {})
        role = user_data.get('role', ROLE_USER)
        if role not in SELF_REGISTER_ROLES:
            raise RolePermissionError("Admin accounts cannot be self-registered")
        user_data['role'] = role

        with transaction.atomic():
            user = self.user_repo.create_user(**user_data)
            self.profile_repo.create_profile(user=user, **profile_data)

        logger.info(f"User {user.id} registered as {user.role}", extra={'user_id': user.id, 'role': user.role})
        return user

    def authenticate_user(self, username: str, password: str) -> Optional[Dict[str, Any]]:
        user = authenticate(username=username, password=password)
        if user and user.is_active:
            token, created = Token.objects.get_or_create(user=user)
            logger.info(f"User {user.id} logged in", extra={'user_id': user.id})
            return {
                'user': user,
                'token': token.key
            }
        logger.warning(f"Failed login for username {username}")
        return None

    def get_user_profile(self, user_id: int) -> User:
        user = self.user_repo.get_user_by_id(user_id)
        if not user:
            raise UserNotFoundError()
        return user

    def update_user_profile(self, user_id: int, user_data: Dict[str, Any], profile_data: Dict[str, Any] = None) -> User:
        user = self.get_user_profile(user_id)

        # Role changes go through the admin endpoints only
        user_data.pop('role', None)
        password = user_data.pop('password', None)

        if user_data:
            user = self.user_repo.update_user(user, **user_data)
        if password:
            user.set_password(password)
            user.save(update_fields=['password'])

        if profile_data:
            profile = self.profile_repo.get_profile_by_user(user)
            if profile:
                self.profile_repo.update_profile(profile, **profile_data)
            else:
                self.profile_repo.create_profile(user=user, **profile_data)

        return self.get_user_profile(user.id)


class AdminService:
    """User management reserved for the ``admin`` role."""

    def __init__(self):
        self.user_repo = UserRepository()

    def _require_admin(self, acting_user: User):
        if not is_admin(acting_user):
            raise RolePermissionError("Only admins can perform this operation")

    def list_users(self, acting_user: User, role: Optional[str] = None) -> List[User]:
        self._require_admin(acting_user)
        if role:
            return self.user_repo.get_users_by_role(role)
        return self.user_repo.get_all_users()

    def promote_to_admin(self, user_id: int, acting_user: User) -> User:
        self._require_admin(acting_user)
        user = self.user_repo.get_user_by_id(user_id)
        if not user:
            raise UserNotFoundError()
        user = self.user_repo.update_user(user, role=ROLE_ADMIN)
        logger.info(
            f"User {user.id} promoted to admin by {acting_user.id}",
            extra={'user_id': user.id, 'admin_id': acting_user.id}
        )
        return user

    def delete_user(self, user_id: int, acting_user: User) -> User:
        """
        Remove a user from the platform.

        The account is deactivated rather than deleted: loan requests and
        offers are never deleted, so an accepted offer keeps its donor.
        """
        self._require_admin(acting_user)
        if user_id == acting_user.id:
            raise ValidationError("You cannot delete your own account")
        user = self.user_repo.get_user_by_id(user_id)
        if not user or not user.is_active:
            raise UserNotFoundError()
        user = self.user_repo.deactivate_user(user)
        logger.info(
            f"User {user_id} deactivated by admin {acting_user.id}",
            extra={'user_id': user_id, 'admin_id': acting_user.id}
        )
        return user

    def get_dashboard(self, acting_user: User) -> Dict[str, int]:
        self._require_admin(acting_user)
        # Imported here so the users app keeps loading without the others
        from apps.loans.models import LoanRequest, Offer
        from apps.loans import lifecycle
        from apps.crowdfunding.models import Fundraiser

        return {
            'total_users': self.user_repo.count_users(),
            'total_loans': LoanRequest.objects.count(),
            'total_offers': Offer.objects.count(),
            'total_fundraisers': Fundraiser.objects.count(),
            'pending_loans': LoanRequest.objects.filter(status=lifecycle.LOAN_PENDING).count(),
            'approved_loans': LoanRequest.objects.filter(status=lifecycle.LOAN_APPROVED).count(),
            'rejected_loans': LoanRequest.objects.filter(status=lifecycle.LOAN_REJECTED).count(),
            'pending_verifications': VerificationRepository.count_by_status(User.VERIFICATION_PENDING),
        }


class VerificationService:
    def __init__(self):
        self.verification_repo = VerificationRepository()
        self.user_repo = UserRepository()

    def submit(self, user: User, nid_number: str, documents: List[str]) -> VerificationRequest:
        nid_number = (nid_number or '').strip()
        if not nid_number:
            raise ValidationError("NID number is required", details={'nid_number': ["This field is required"]})
        if user.verification_status not in SUBMITTABLE_STATUSES:
            raise InvalidVerificationStateError(
                f"Verification cannot be submitted while it is {user.verification_status}"
            )

        with transaction.atomic():
            verification = self.verification_repo.create_request(user, nid_number, list(documents or []))
            self.user_repo.update_user(user, verification_status=User.VERIFICATION_PENDING)

        logger.info(
            f"Verification {verification.id} submitted by user {user.id}",
            extra={'user_id': user.id, 'verification_id': verification.id}
        )
        return verification

    def get_status(self, user: User) -> Dict[str, Any]:
        latest = self.verification_repo.get_requests_for_user(user.id).first()
        return {'verification_status': user.verification_status, 'latest_request': latest}

    def get_history(self, user_id: int, acting_user: User) -> List[VerificationRequest]:
        if user_id != acting_user.id and not is_admin(acting_user):
            raise RolePermissionError("You can only view your own verification history")
        return self.verification_repo.get_requests_for_user(user_id)

    def list_requests(self, acting_user: User, status: Optional[str] = None) -> List[VerificationRequest]:
        if not is_admin(acting_user):
            raise RolePermissionError("Only admins can review verification requests")
        return self.verification_repo.get_requests(status)

    def approve(self, request_id: int, acting_user: User) -> VerificationRequest:
        return self._review(request_id, acting_user, User.VERIFICATION_VERIFIED)

    def reject(self, request_id: int, acting_user: User, reason: str) -> VerificationRequest:
        reason = (reason or '').strip()
        if not reason:
            raise ValidationError("A rejection reason is required", details={'reason': ["This field is required"]})
        return self._review(request_id, acting_user, User.VERIFICATION_REJECTED, rejection_reason=reason)

    def request_info(self, request_id: int, acting_user: User, reason: str = '') -> VerificationRequest:
        return self._review(
            request_id, acting_user, User.VERIFICATION_ADDITIONAL_INFO, rejection_reason=(reason or '').strip()
        )

    def _review(self, request_id: int, acting_user: User, target: str, **fields) -> VerificationRequest:
        if not is_admin(acting_user):
            raise RolePermissionError("Only admins can review verification requests")

        verification = self.verification_repo.get_request_by_id(request_id)
        if not verification:
            raise VerificationRequestNotFoundError()
        if verification.status != User.VERIFICATION_PENDING:
            raise InvalidVerificationStateError(f"This request has already been marked {verification.status}")

        with transaction.atomic():
            if not self.verification_repo.transition_status(
                verification.id, User.VERIFICATION_PENDING, target,
                reviewed_by=acting_user, reviewed_at=timezone.now(), **fields
            ):
                raise InvalidVerificationStateError("This request was reviewed by another admin")
            self.user_repo.update_user(verification.user, verification_status=target)

        logger.info(
            f"Verification {verification.id} marked {target} by admin {acting_user.id}",
            extra={'verification_id': verification.id, 'user_id': verification.user_id, 'admin_id': acting_user.id}
        )
        return self.verification_repo.get_request_by_id(verification.id)
