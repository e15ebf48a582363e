# backend/clinic_core/common/api/auth.py

from __future__ import annotations

from django.contrib.auth.signals import user_logged_in
from drf_spectacular.utils import extend_schema, inline_serializer
from rest_framework import serializers, status
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView
from rest_framework_simplejwt.exceptions import InvalidToken, TokenError
from rest_framework_simplejwt.serializers import TokenObtainPairSerializer, TokenRefreshSerializer
from rest_framework_simplejwt.settings import api_settings as jwt_settings
from rest_framework_simplejwt.tokens import AccessToken

from clinic_core.audit.constants import AUTH_RESOURCE_TYPE
from clinic_core.audit.models import AuditAction
from clinic_core.audit.services import AuditService, client_ip
from clinic_core.common.api.exceptions import build_success_envelope

_TokenPair = inline_serializer(
    name="TokenPairEnvelope",
    fields={
        "success": serializers.BooleanField(),
        "data": inline_serializer(
            name="TokenPair",
            fields={"access": serializers.CharField(), "refresh": serializers.CharField(required=False)},
        ),
    },
)


class LoginView(APIView):
    """
    Username/password -> JWT pair. Failed attempts are recorded by the
    user_login_failed receiver; success is announced via user_logged_in.
    """
    permission_classes = [AllowAny]

    @extend_schema(request=TokenObtainPairSerializer, responses={200: _TokenPair}, tags=["Auth"])
    def post(self, request):
        serializer = TokenObtainPairSerializer(data=request.data, context={"request": request})
        try:
            serializer.is_valid(raise_exception=True)
        except TokenError as e:
            raise InvalidToken(e.args[0])

        user = serializer.user
        user_logged_in.send(sender=user.__class__, request=request, user=user)

        return Response(build_success_envelope(serializer.validated_data), status=status.HTTP_200_OK)


class RefreshView(APIView):
    permission_classes = [AllowAny]

    @extend_schema(request=TokenRefreshSerializer, responses={200: _TokenPair}, tags=["Auth"])
    def post(self, request):
        serializer = TokenRefreshSerializer(data=request.data, context={"request": request})
        try:
            serializer.is_valid(raise_exception=True)
        except (TokenError, InvalidToken) as e:
            AuditService.record_from_request(
                request,
                action=AuditAction.TOKEN_REFRESH_FAILED,
                resource_type=AUTH_RESOURCE_TYPE,
                description="Token refresh failed",
            )
            if isinstance(e, TokenError):
                raise InvalidToken(e.args[0])
            raise

        access = AccessToken(serializer.validated_data["access"])
        user_id = access.get(jwt_settings.USER_ID_CLAIM)
        AuditService.record(
            actor_id=user_id,
            action=AuditAction.TOKEN_REFRESH,
            resource_type=AUTH_RESOURCE_TYPE,
            resource_id=user_id,
            description="Access token refreshed",
            source_ip=client_ip(request),
            user_agent=request.META.get("HTTP_USER_AGENT", ""),
        )

        return Response(build_success_envelope(serializer.validated_data), status=status.HTTP_200_OK)
