from http.cookies import SimpleCookie

from core.session import SessionResolver


def test_real_session_is_present():
    session = SessionResolver().resolve({'sid': 'abc123'})
    assert session.present is True
    assert session.raw == 'abc123'


def test_absent_empty_and_guest_sessions_are_not_present():
    resolver = SessionResolver()
    assert resolver.resolve({}).present is False
    assert resolver.resolve({}).raw is None
    assert resolver.resolve({'sid': ''}).present is False

    guest = resolver.resolve({'sid': 'Guest'})
    assert guest.present is False
    assert guest.raw == 'Guest'


def test_morsel_values_are_read():
    cookies = SimpleCookie()
    cookies.load('sid=xyz; full_name=Sara')
    resolver = SessionResolver()
    assert resolver.resolve(cookies).present is True
    assert resolver.resolve_user(cookies).full_name == 'Sara'


def test_custom_cookie_name():
    resolver = SessionResolver(cookie_name='session', guest_value='anonymous')
    assert resolver.resolve({'session': 'anonymous'}).present is False
    assert resolver.resolve({'session': 'x', 'sid': 'Guest'}).present is True


def test_resolve_user_reads_profile_cookies():
    user = SessionResolver().resolve_user({
        'full_name': 'Administrator',
        'user_id': 'admin@example.com',
        'system_user': 'yes',
        'workspaces': '["Welcome Workspace"]',
        'permissions': '{"Project": ["read"]}',
    })
    assert user.full_name == 'Administrator'
    assert user.user_id == 'admin@example.com'
    assert user.is_system_user is True
    assert user.user_image is None
    assert user.workspaces == ['Welcome Workspace']
    assert user.permissions == {'Project': ['read']}


def test_resolve_user_ignores_malformed_json():
    user = SessionResolver().resolve_user({'workspaces': '[oops', 'permissions': '["not", "a dict"]'})
    assert user.workspaces == []
    assert user.permissions == {}
    assert user.is_system_user is False
