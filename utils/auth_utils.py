from flask import g, request

import config


def load_user_from_gateway():
    """Take the authenticated user id from the header set by the gateway"""
    user_id = (request.headers.get(config.AUTH_USER_HEADER) or '').strip()
    g.user_id = user_id or None


def get_current_user_id():
    """Current authenticated user id, or None outside an authenticated request"""
    return g.get('user_id') if g else None
