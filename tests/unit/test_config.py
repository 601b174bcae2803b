"""
Unit tests for configuration loading and validation.
"""

import textwrap

import pytest

from db_session_monitor.config import (
    ApplicationConfig,
    DatabaseConfig,
    LogFormat,
    PoolConfig,
    load_config,
    parse_config,
)
from db_session_monitor.exceptions import ConfigurationError


VALID_YAML = textwrap.dedent("""
    databases:
      - name: orders
        type: postgres
        host: db1.internal
        username: monitor
        password: ${ORDERS_PASSWORD}
      - name: billing
        type: mysql
        host: db2.internal
        thresholds:
          active_connections: 5
    email:
      smtp_host: smtp.example.com
      from_email: alerts@example.com
      to_emails: [dba@example.com]
    application:
      alert_frequency: 3
      http_server_address: "127.0.0.1:9090"
    logging:
      level: debug
      format: json
""")


def _minimal(**overrides):
    data = {
        'databases': [{'name': 'orders', 'type': 'postgresql', 'host': 'db1'}],
        'slack': {'webhook_url': 'https://hooks.slack.test/x'},
    }
    data.update(overrides)
    return data


class TestLoadConfig:

    def test_load_valid_file(self, tmp_path, monkeypatch):
        monkeypatch.setenv("ORDERS_PASSWORD", "s3cret")
        path = tmp_path / "config.yaml"
        path.write_text(VALID_YAML)

        config = load_config(path)

        orders, billing = config.databases
        assert orders.type == "postgresql"
        assert orders.port == 5432
        assert orders.password == "s3cret"
        assert billing.port == 3306
        assert config.email.is_configured
        assert config.application.alert_frequency == 3
        assert config.application.http_bind() == ("127.0.0.1", 9090)
        assert config.logging.level == "DEBUG"
        assert config.logging.format == LogFormat.JSON

    def test_defaults(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(VALID_YAML)

        config = load_config(path)

        assert config.thresholds.active_connections == 50
        assert config.thresholds.inactive_connections == 100
        assert config.thresholds.total_connections == 200
        assert config.application.monitoring_interval == 60
        assert config.application.health_check_interval == 300
        assert config.application.alert_reset_interval == 3600
        assert config.application.check_timeout == 45
        assert config.pool.max_open_conns == 10

    def test_thresholds_for(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(VALID_YAML)

        config = load_config(path)

        assert config.thresholds_for("orders") is config.thresholds
        assert config.thresholds_for("billing").active_connections == 5
        assert config.thresholds_for("missing") is config.thresholds

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError) as exc_info:
            load_config(tmp_path / "absent.yaml")
        assert exc_info.value.config_path.endswith("absent.yaml")

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("databases: [unclosed")
        with pytest.raises(ConfigurationError, match="Failed to parse"):
            load_config(path)

    def test_non_mapping_document(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("- just\n- a list\n")
        with pytest.raises(ConfigurationError, match="mapping"):
            load_config(path)


class TestValidation:

    def test_minimal_config(self):
        config = parse_config(_minimal())
        assert config.get_database("orders").host == "db1"

    def test_no_databases(self):
        with pytest.raises(ConfigurationError, match="no databases configured"):
            parse_config(_minimal(databases=[]))

    def test_duplicate_names(self):
        databases = [{'name': 'orders', 'type': 'mysql', 'host': 'a'}, {'name': 'orders', 'type': 'mysql', 'host': 'b'}]
        with pytest.raises(ConfigurationError, match="duplicate database name"):
            parse_config(_minimal(databases=databases))

    def test_unsupported_type(self):
        with pytest.raises(ConfigurationError, match="invalid database type"):
            parse_config(_minimal(databases=[{'name': 'legacy', 'type': 'oracle', 'host': 'a'}]))

    def test_empty_host(self):
        with pytest.raises(ConfigurationError, match="host cannot be empty"):
            parse_config(_minimal(databases=[{'name': 'orders', 'type': 'mysql', 'host': ''}]))

    def test_no_notification_channel(self):
        data = _minimal()
        del data['slack']
        with pytest.raises(ConfigurationError, match="no notification channel"):
            parse_config(data)

    def test_webhook_counts_as_channel(self):
        data = _minimal()
        del data['slack']
        data['webhook'] = {'url': 'https://alerts.example.com/hook'}
        assert parse_config(data).webhook.is_configured

    def test_cert_path_requires_all_files(self, tmp_path):
        (tmp_path / "client-cert.pem").write_text("pem")
        databases = [{'name': 'orders', 'type': 'mysql', 'host': 'a', 'cert_path': str(tmp_path)}]
        with pytest.raises(ConfigurationError, match="client-key.pem"):
            parse_config(_minimal(databases=databases))

    def test_cert_path_with_all_files(self, tmp_path):
        for name in ("client-cert.pem", "client-key.pem", "ca-cert.pem"):
            (tmp_path / name).write_text("pem")
        databases = [{'name': 'orders', 'type': 'mysql', 'host': 'a', 'cert_path': str(tmp_path)}]
        assert parse_config(_minimal(databases=databases)).databases[0].cert_path == tmp_path


class TestModels:

    def test_database_type_aliases(self):
        assert DatabaseConfig(name="a", type="Postgres", host="h").type == "postgresql"
        assert DatabaseConfig(name="a", type="MariaDB", host="h").type == "mysql"

    def test_explicit_port_kept(self):
        assert DatabaseConfig(name="a", type="mysql", host="h", port=3307).port == 3307

    def test_display_name(self):
        db = DatabaseConfig(name="orders", type="postgresql", host="db1")
        assert db.display_name() == "orders (postgresql@db1:5432)"

    def test_pool_limits(self):
        with pytest.raises(ValueError):
            PoolConfig(backoff_initial=10, backoff_max=1)
        with pytest.raises(ValueError):
            PoolConfig(max_open_conns=2, max_idle_conns=5)

    def test_http_address(self):
        assert ApplicationConfig().http_bind() == ("0.0.0.0", 8080)
        with pytest.raises(ValueError):
            ApplicationConfig(http_server_address="localhost")
