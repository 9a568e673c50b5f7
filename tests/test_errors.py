"""
Tests for error response helpers.
"""


class TestErrorResponse:

    def test_enum_and_raw_codes_render_the_same(self, app):
        from clubsync.utils.errors import ErrorCode, error_response

        with app.test_request_context():
            enum_response, enum_status = error_response('No tier name', ErrorCode.MISSING_FIELD, 400)
            raw_response, raw_status = error_response('No tier name', 'MISSING_FIELD', 400)

        assert enum_status == raw_status == 400
        assert enum_response.get_json() == raw_response.get_json() == {
            'error': {'message': 'No tier name', 'code': 'MISSING_FIELD'}
        }

    def test_exception_codes_are_not_enum_members(self, app):
        """Exceptions carry their own codes; the enum only lists codes the views return directly."""
        from clubsync.utils.errors import ErrorCode, exception_response
        from clubsync.utils.exceptions import RateLimitedError

        assert set(ErrorCode.__members__) == {
            'AUTH_REQUIRED', 'INVALID_SIGNATURE', 'UNKNOWN_TENANT',
            'INVALID_REQUEST', 'MISSING_FIELD', 'VALIDATION_ERROR',
            'NOT_FOUND', 'ALREADY_EXISTS', 'STATE_CONFLICT',
            'PLATFORM_ERROR', 'INTERNAL_ERROR', 'DATABASE_ERROR',
        }

        with app.test_request_context():
            response, status = exception_response(RateLimitedError('Commerce7', retry_after=30))

        assert status == 429
        assert response.get_json()['error']['code'] == 'RATE_LIMITED'
