from rest_framework import serializers
from rest_framework_simplejwt.tokens import RefreshToken
from .models import User
from django.contrib.auth.hashers import make_password


class UserSerializer(serializers.ModelSerializer):
    full_name = serializers.SerializerMethodField()

    password = serializers.CharField(
        write_only=True,
        required=True,
        min_length=8,
        style={"input_type": "password"},
    )

    class Meta:
        model = User
        fields = (
            "id",
            "email",
            "first_name",
            "last_name",
            "full_name",
            "bio",
            "is_staff",
            "created_at",
            "password",
        )
        # Account flags are never client-writable
        read_only_fields = ["id", "full_name", "is_staff", "created_at"]

    def get_full_name(self, obj):
        return obj.get_full_name()

    def create(self, validated_data):
        return User.objects.create_user(**validated_data)

    def update(self, instance, validated_data):
        # Hash a new password before the single save in super().update()
        raw_password = validated_data.pop("password", None)
        if raw_password:
            validated_data["password"] = make_password(raw_password)
        return super().update(instance, validated_data)


class UserSerializerWithToken(UserSerializer):
    access = serializers.SerializerMethodField(read_only=True)
    refresh = serializers.SerializerMethodField(read_only=True)

    class Meta(UserSerializer.Meta):
        fields = UserSerializer.Meta.fields + ("access", "refresh")

    def _token(self, obj):
        # One refresh token per serialization so access and refresh belong together
        if not hasattr(self, "_refresh_token"):
            self._refresh_token = RefreshToken.for_user(obj)
        return self._refresh_token

    def get_access(self, obj):
        return str(self._token(obj).access_token)

    def get_refresh(self, obj):
        return str(self._token(obj))


class PublicUserSerializer(serializers.ModelSerializer):
    """What anyone may see about an author."""

    full_name = serializers.SerializerMethodField()
    post_count = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = ("id", "full_name", "bio", "created_at", "post_count")
        read_only_fields = fields

    def get_full_name(self, obj):
        return obj.get_full_name()

    def get_post_count(self, obj):
        return obj.posts.filter(is_published=True).count()
