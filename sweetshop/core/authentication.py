from rest_framework_simplejwt.authentication import JWTAuthentication

from .auth import decode_token


class BearerTokenAuthentication(JWTAuthentication):
    """JWT authentication that reports bad tokens with the project's Unauthorized error"""

    def get_validated_token(self, raw_token):
        return decode_token(raw_token)
