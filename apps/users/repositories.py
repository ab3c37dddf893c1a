from typing import Optional, List
from django.contrib.auth import get_user_model
from rest_framework.authtoken.models import Token
from .models import UserProfile, VerificationRequest

User = get_user_model()


class UserRepository:
    @staticmethod
    def create_user(username: str, email: str, password: str, role: str, **kwargs) -> User:
        user = User.objects.create_user(
            username=username,
            email=email,
            password=password,
            role=role,
            **kwargs
        )
        return user

    @staticmethod
    def get_user_by_id(user_id: int) -> Optional[User]:
        try:
            return User.objects.select_related('profile').get(id=user_id)
        except User.DoesNotExist:
            return None

    @staticmethod
    def get_all_users() -> List[User]:
        return User.objects.filter(is_active=True).select_related('profile').order_by('-created_at')

    @staticmethod
    def get_users_by_role(role: str) -> List[User]:
        return User.objects.filter(role=role, is_active=True).select_related('profile')

    @staticmethod
    def update_user(user: User, **kwargs) -> User:
        for field, value in kwargs.items():
            setattr(user, field, value)
        user.save()
        return user

    @staticmethod
    def deactivate_user(user: User) -> User:
        user.is_active = False
        user.save(update_fields=['is_active', 'updated_at'])
        Token.objects.filter(user=user).delete()
        return user

    @staticmethod
    def count_users() -> int:
        return User.objects.filter(is_active=True).count()


class UserProfileRepository:
    @staticmethod
    def create_profile(user: User, **kwargs) -> UserProfile:
        profile = UserProfile.objects.create(user=user, **kwargs)
        return profile

    @staticmethod
    def get_profile_by_user(user: User) -> Optional[UserProfile]:
        try:
            return UserProfile.objects.get(user=user)
        except UserProfile.DoesNotExist:
            return None

    @staticmethod
    def update_profile(profile: UserProfile, **kwargs) -> UserProfile:
        for field, value in kwargs.items():
            setattr(profile, field, value)
        profile.save()
        return profile


class VerificationRepository:
    @staticmethod
    def create_request(user: User, nid_number: str, documents: list) -> VerificationRequest:
        return VerificationRequest.objects.create(user=user, nid_number=nid_number, documents=documents)

    @staticmethod
    def get_request_by_id(request_id: int) -> Optional[VerificationRequest]:
        try:
            return VerificationRequest.objects.select_related('user', 'reviewed_by').get(id=request_id)
        except VerificationRequest.DoesNotExist:
            return None

    @staticmethod
    def get_requests_for_user(user_id: int) -> List[VerificationRequest]:
        return VerificationRequest.objects.filter(user_id=user_id).select_related('reviewed_by')

    @staticmethod
    def get_requests(status: Optional[str] = None) -> List[VerificationRequest]:
        requests = VerificationRequest.objects.select_related('user', 'reviewed_by')
        if status:
            requests = requests.filter(status=status)
        return requests

    @staticmethod
    def transition_status(request_id: int, from_status: str, to_status: str, **fields) -> bool:
        updated = VerificationRequest.objects.filter(id=request_id, status=from_status).update(
            status=to_status, **fields
        )
        return updated == 1

    @staticmethod
    def count_by_status(status: str) -> int:
        return VerificationRequest.objects.filter(status=status).count()
