"""
Tests for caller identity resolution.

Resolution order:
- Verified claims from the upstream authorizer (sub, then cognito:username)
- Raw principal id from the upstream authorizer
- Bearer token payload decoded without verification
Anything else is Unauthenticated; blank values never count as an identity.
"""
import base64
import json

import pytest
from starlette.requests import Request

from conftest import OWNER_A, auth_headers, make_token
from filebroker.core.identity import (
    BearerTokenSource,
    CallerContext,
    IdentityResolver,
    PrincipalSource,
    VerifiedClaimsSource,
)
from filebroker.shared.exceptions import UnauthenticatedError


def build_request(headers=None, **scope_extra):
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/",
        "query_string": b"",
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
        "client": ("10.0.0.7", 52100),
    }
    scope.update(scope_extra)
    return Request(scope)


class TestCallerContext:
    def test_reads_lambda_authorizer_claims(self):
        request = build_request(**{
            "aws.event": {
                "requestContext": {
                    "authorizer": {"claims": {"sub": "user-123"}},
                    "identity": {"sourceIp": "203.0.113.9"},
                }
            }
        })

        context = CallerContext.from_request(request)

        assert context.claims == {"sub": "user-123"}
        assert context.source_ip == "203.0.113.9"

    def test_reads_http_api_jwt_claims(self):
        request = build_request(authorizer={"jwt": {"claims": {"cognito:username": "alice"}}})

        context = CallerContext.from_request(request)

        assert context.claims == {"cognito:username": "alice"}

    def test_authorizer_itself_can_carry_sub(self):
        request = build_request(authorizer={"sub": "direct-sub"})

        assert CallerContext.from_request(request).claims == {"sub": "direct-sub"}

    def test_principal_id_and_cognito_identity(self):
        request = build_request(**{
            "aws.event": {
                "requestContext": {
                    "authorizer": {"principalId": "principal-1"},
                    "identity": {"cognitoIdentityId": "us-east-1:identity"},
                }
            }
        })

        context = CallerContext.from_request(request)

        assert context.claims is None
        assert context.principal_id == "principal-1"

    def test_cognito_identity_used_when_no_principal(self):
        request = build_request(**{
            "aws.event": {"requestContext": {"identity": {"cognitoIdentityId": "us-east-1:identity"}}}
        })

        assert CallerContext.from_request(request).principal_id == "us-east-1:identity"

    def test_forwarded_for_and_user_agent(self):
        request = build_request(headers={
            "X-Forwarded-For": "198.51.100.4, 10.0.0.1",
            "User-Agent": "pytest-agent",
        })

        context = CallerContext.from_request(request)

        assert context.source_ip == "198.51.100.4"
        assert context.request_metadata() == {"ipAddress": "198.51.100.4", "userAgent": "pytest-agent"}

    def test_request_metadata_defaults_to_unknown(self):
        assert CallerContext().request_metadata() == {"ipAddress": "unknown", "userAgent": "unknown"}


class TestStrategies:
    def test_verified_claims_prefers_sub(self):
        context = CallerContext(claims={"sub": "sub-id", "cognito:username": "alice"})
        assert VerifiedClaimsSource().try_extract(context) == "sub-id"

    def test_verified_claims_falls_back_to_username(self):
        context = CallerContext(claims={"sub": "  ", "cognito:username": "alice"})
        assert VerifiedClaimsSource().try_extract(context) == "alice"

    def test_principal_source_ignores_blank(self):
        assert PrincipalSource().try_extract(CallerContext(principal_id="")) is None

    def test_bearer_token_base64url(self):
        context = CallerContext(authorization=f"Bearer {make_token({'sub': 'token-user'})}")
        assert BearerTokenSource().try_extract(context) == "token-user"

    def test_bearer_token_username_claim(self):
        context = CallerContext(authorization=f"Bearer {make_token({'cognito:username': 'bob'})}")
        assert BearerTokenSource().try_extract(context) == "bob"

    def test_bearer_token_with_padding(self):
        header = base64.urlsafe_b64encode(json.dumps({"alg": "none"}).encode()).decode()
        payload = base64.urlsafe_b64encode(json.dumps({"sub": "padded-user"}).encode()).decode()
        signature = base64.b64encode(b"sig").decode()
        context = CallerContext(authorization=f"Bearer {header}.{payload}.{signature}")

        assert BearerTokenSource().try_extract(context) == "padded-user"

    @pytest.mark.parametrize("header", [
        None,
        "Basic dXNlcjpwYXNz",
        "Bearer not-a-jwt",
        "Bearer a.b",
        "Bearer !!!.@@@.###",
    ])
    def test_bearer_token_rejects_malformed(self, header):
        assert BearerTokenSource().try_extract(CallerContext(authorization=header)) is None

    def test_bearer_token_header_segment_is_ignored(self):
        payload = base64.urlsafe_b64encode(json.dumps({"sub": "abc"}).encode()).rstrip(b"=").decode()
        context = CallerContext(authorization=f"Bearer notjson.{payload}.sig")

        assert BearerTokenSource().try_extract(context) == "abc"

    def test_bearer_token_standard_base64_payload(self):
        payload = base64.b64encode(json.dumps({"sub": "???"}).encode()).decode()
        assert "/" in payload
        context = CallerContext(authorization=f"Bearer header.{payload}.sig")

        assert BearerTokenSource().try_extract(context) == "???"

    def test_bearer_token_without_identity_claims(self):
        context = CallerContext(authorization=f"Bearer {make_token({'email': 'x@example.com'})}")
        assert BearerTokenSource().try_extract(context) is None


class TestIdentityResolver:
    def test_claims_win_over_principal_and_token(self):
        context = CallerContext(
            claims={"sub": "from-claims"},
            principal_id="from-principal",
            authorization=f"Bearer {make_token({'sub': 'from-token'})}",
        )
        assert IdentityResolver().resolve(context) == "from-claims"

    def test_principal_wins_over_token(self):
        context = CallerContext(
            principal_id="from-principal",
            authorization=f"Bearer {make_token({'sub': 'from-token'})}",
        )
        assert IdentityResolver().resolve(context) == "from-principal"

    def test_token_is_last_resort(self):
        context = CallerContext(authorization=auth_headers(OWNER_A)["Authorization"])
        assert IdentityResolver().resolve(context) == OWNER_A

    def test_nothing_resolvable_is_unauthenticated(self):
        with pytest.raises(UnauthenticatedError):
            IdentityResolver().resolve(CallerContext())

    def test_custom_source_order(self):
        context = CallerContext(claims={"sub": "from-claims"}, principal_id="from-principal")
        resolver = IdentityResolver([PrincipalSource(), VerifiedClaimsSource()])
        assert resolver.resolve(context) == "from-principal"
