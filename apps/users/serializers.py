from rest_framework import serializers
from django.contrib.auth import authenticate
from .models import User, UserProfile, VerificationRequest


class UserProfileSerializer(serializers.ModelSerializer):
    class Meta:
        model = UserProfile
        fields = ['phone_number', 'date_of_birth', 'address']


class UserSerializer(serializers.ModelSerializer):
    profile = UserProfileSerializer(required=False)
    password = serializers.CharField(write_only=True, min_length=6)
    role = serializers.ChoiceField(choices=User.ROLE_CHOICES, required=False)

    class Meta:
        model = User
        fields = [
            'id', 'username', 'email', 'first_name', 'last_name', 'role',
            'verification_status', 'profile', 'password', 'created_at'
        ]
        read_only_fields = ['id', 'verification_status', 'created_at']


class LoginSerializer(serializers.Serializer):
    username = serializers.CharField()
    password = serializers.CharField()

    def validate(self, data):
        username = data.get('username')
        password = data.get('password')

        if username and password:
            user = authenticate(username=username, password=password)
            if not user:
                raise serializers.ValidationError('Invalid credentials')
            if not user.is_active:
                raise serializers.ValidationError('User account is disabled')
            data['user'] = user
        else:
            raise serializers.ValidationError('Must include username and password')

        return data


class VerificationRequestSerializer(serializers.ModelSerializer):
    user_id = serializers.IntegerField(read_only=True)
    username = serializers.CharField(source='user.username', read_only=True)
    reviewed_by_id = serializers.IntegerField(read_only=True, allow_null=True)

    class Meta:
        model = VerificationRequest
        fields = [
            'id', 'user_id', 'username', 'nid_number', 'documents', 'status',
            'rejection_reason', 'reviewed_by_id', 'reviewed_at', 'created_at'
        ]
        read_only_fields = fields


class SubmitVerificationSerializer(serializers.Serializer):
    nid_number = serializers.CharField(max_length=32)
    documents = serializers.ListField(child=serializers.CharField(max_length=255), required=False, default=list)


class VerificationStatusSerializer(serializers.Serializer):
    verification_status = serializers.CharField()
    latest_request = VerificationRequestSerializer(allow_null=True)


class ReviewVerificationSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, default='')
