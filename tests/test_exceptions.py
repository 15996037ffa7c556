from api_metrics.exceptions import ApiMetricsError, ConfigurationError, StorageDriverError


def test_storage_driver_error_details():
    error = StorageDriverError("Metric depth already registered", metric_name="depth", driver="memory")
    assert isinstance(error, ApiMetricsError)
    assert error.to_dict() == {
        "type": "StorageDriverError",
        "message": "Metric depth already registered",
        "error_code": "STORAGE_DRIVER_ERROR",
        "details": {"metric": "depth", "driver": "memory"},
    }


def test_configuration_error():
    error = ConfigurationError("missing url", config_key="redis_url")
    assert str(error) == "missing url"
    assert error.error_code == "CONFIG_ERROR"
    assert error.config_key == "redis_url"
