"""
Unit Tests for the auth and admin renderers.
"""

import base64

import pytest

from stunner_operator import config
from stunner_operator.renderer.admin import render_admin, validate_admin
from stunner_operator.renderer.auth import get_auth_type, render_auth
from stunner_operator.renderer.errors import CriticalError, Reason

NS = 'testnamespace'


def set_gw_conf_spec(store, objs, **spec):
    objs.gw_conf['spec'].update(spec)
    for k in [k for k, v in spec.items() if v is None]:
        del objs.gw_conf['spec'][k]
    store.upsert(objs.gw_conf)


# =============================================================================
# Auth Tests
# =============================================================================


class TestAuthType:
    """Tests for auth type aliases."""

    @pytest.mark.parametrize('alias,expected', [
        ('static', 'static'),
        ('plaintext', 'static'),
        ('Plaintext', 'static'),
        ('ephemeral', 'ephemeral'),
        ('timewindowed', 'ephemeral'),
        ('longterm', 'ephemeral'),
    ])
    def test_aliases(self, alias, expected):
        assert get_auth_type(alias) == expected

    def test_unknown_type(self):
        with pytest.raises(CriticalError) as e:
            get_auth_type('dummy')
        assert e.value.reason == Reason.INVALID_AUTH_TYPE


class TestRenderAuth:
    """Tests for render_auth."""

    def test_inline_static(self, make_context, legacy_conf):
        """Inline credentials are used without an authRef."""
        auth = render_auth(make_context(legacy_conf))
        assert auth.realm == 'testrealm'
        assert auth.type == 'static'
        assert auth.credentials == {'username': 'testuser',
                                    'password': 'testpass'}

    def test_default_realm(self, store, objs, make_context, legacy_conf):
        set_gw_conf_spec(store, objs, realm=None)
        auth = render_auth(make_context(legacy_conf))
        assert auth.realm == config.DEFAULT_REALM

    def test_inline_ephemeral(self, store, objs, make_context, legacy_conf):
        set_gw_conf_spec(store, objs, authType='longterm',
                         sharedSecret='topsecret')
        auth = render_auth(make_context(legacy_conf))
        assert auth.type == 'ephemeral'
        assert auth.credentials == {'secret': 'topsecret'}

    def test_missing_password(self, store, objs, make_context, legacy_conf):
        """Missing inline credentials are critical."""
        set_gw_conf_spec(store, objs, password=None)
        with pytest.raises(CriticalError) as e:
            render_auth(make_context(legacy_conf))
        assert e.value.reason == Reason.INVALID_USERNAME_PASSWORD

    def test_missing_shared_secret(self, store, objs, make_context,
                                   legacy_conf):
        set_gw_conf_spec(store, objs, authType='ephemeral')
        with pytest.raises(CriticalError) as e:
            render_auth(make_context(legacy_conf))
        assert e.value.reason == Reason.INVALID_SHARED_SECRET

    def test_neither_source(self, store, objs, make_context, legacy_conf):
        """No inline fields and no authRef is critical."""
        set_gw_conf_spec(store, objs, authType=None, userName=None,
                         password=None)
        with pytest.raises(CriticalError):
            render_auth(make_context(legacy_conf))

    def test_secret_overrides_inline(self, store, objs, make_context,
                                     legacy_conf):
        """The referenced Secret wins over the inline credentials."""
        set_gw_conf_spec(store, objs, authRef={'name': 'testauthsecret'})
        auth = render_auth(make_context(legacy_conf))
        assert auth.type == 'static'
        assert auth.credentials == {'username': 'secretuser',
                                    'password': 'secretpass'}

    def test_secret_base64_data(self, store, objs, make_context,
                                legacy_conf):
        """Secret 'data' is base64 decoded, 'sharedSecret' is accepted."""
        def b64(s):
            return base64.b64encode(s.encode()).decode()
        objs.auth_secret.pop('stringData')
        objs.auth_secret['data'] = {'type': b64('ephemeral'),
                                    'sharedSecret': b64('s3cr3t')}
        store.upsert(objs.auth_secret)
        set_gw_conf_spec(store, objs, authRef={'name': 'testauthsecret',
                                               'namespace': NS})
        auth = render_auth(make_context(legacy_conf))
        assert auth.type == 'ephemeral'
        assert auth.credentials == {'secret': 's3cr3t'}

    def test_secret_not_found(self, store, objs, make_context, legacy_conf):
        set_gw_conf_spec(store, objs, authRef={'name': 'nonexistent'})
        with pytest.raises(CriticalError) as e:
            render_auth(make_context(legacy_conf))
        assert e.value.reason == Reason.EXTERNAL_AUTH_CREDENTIALS_NOT_FOUND

    def test_secret_invalid_kind(self, store, objs, make_context,
                                 legacy_conf):
        set_gw_conf_spec(store, objs, authRef={'name': 'testauthsecret',
                                               'kind': 'ConfigMap'})
        with pytest.raises(CriticalError) as e:
            render_auth(make_context(legacy_conf))
        assert e.value.reason == Reason.EXTERNAL_AUTH_CREDENTIALS_NOT_FOUND

    def test_incomplete_secret_with_inline(self, store, objs, make_context,
                                           legacy_conf):
        """An incomplete Secret next to inline credentials is ambiguous."""
        del objs.auth_secret['stringData']['password']
        store.upsert(objs.auth_secret)
        set_gw_conf_spec(store, objs, authRef={'name': 'testauthsecret'})
        with pytest.raises(CriticalError) as e:
            render_auth(make_context(legacy_conf))
        assert e.value.reason == Reason.MIXED_INLINE_EXTERNAL_AUTH

    def test_incomplete_secret(self, store, objs, make_context, legacy_conf):
        del objs.auth_secret['stringData']['password']
        store.upsert(objs.auth_secret)
        set_gw_conf_spec(store, objs, authRef={'name': 'testauthsecret'},
                         userName=None, password=None)
        with pytest.raises(CriticalError) as e:
            render_auth(make_context(legacy_conf))
        assert e.value.reason == Reason.INVALID_USERNAME_PASSWORD


# =============================================================================
# Admin Tests
# =============================================================================


class TestRenderAdmin:
    """Tests for render_admin."""

    def test_legacy(self, make_context, legacy_conf):
        """Legacy mode ignores the Dataplane."""
        admin = render_admin(make_context(legacy_conf))
        assert admin.name == config.DEFAULT_INSTANCE_NAME
        assert admin.logLevel == 'all:DEBUG'
        assert admin.healthCheckEndpoint == config.DEFAULT_HEALTH_CHECK_ENDPOINT
        assert 'metricsEndpoint' not in admin
        assert admin.offloadEngine == 'none'
        assert admin.offloadInterfaces == []

    def test_default_log_level(self, store, objs, make_context, legacy_conf):
        set_gw_conf_spec(store, objs, logLevel=None)
        admin = render_admin(make_context(legacy_conf))
        assert admin.logLevel == config.DEFAULT_LOG_LEVEL

    def test_managed(self, store, objs, make_context, managed_conf):
        """Managed mode takes metrics, health check and offload from the
        Dataplane."""
        objs.dataplane['spec'].update(enableMetricsEndpoint=True,
                                      disableHealthCheck=True,
                                      offloadEngine='XDP',
                                      offloadInterfaces=['eth0'])
        store.upsert(objs.dataplane)
        admin = render_admin(make_context(managed_conf))
        assert admin.name == f'{NS}/gateway-1'
        assert admin.metricsEndpoint == config.DEFAULT_METRICS_ENDPOINT
        assert 'healthCheckEndpoint' not in admin
        assert admin.offloadEngine == 'xdp'
        assert admin.offloadInterfaces == ['eth0']

    def test_invalid_offload_engine(self, store, objs, make_context,
                                    managed_conf):
        objs.dataplane['spec']['offloadEngine'] = 'warp-drive'
        store.upsert(objs.dataplane)
        with pytest.raises(CriticalError) as e:
            render_admin(make_context(managed_conf))
        assert e.value.reason == Reason.INVALID_ADMIN_CONFIG

    def test_validate_fills_defaults(self):
        from munch import Munch
        admin = validate_admin(Munch())
        assert admin.name == config.DEFAULT_INSTANCE_NAME
        assert admin.logLevel == config.DEFAULT_LOG_LEVEL
        assert admin.offloadEngine == 'none'
