# tests/models/test_prometheus_models.py

import pytest
from pydantic import ValidationError

from kubeperf.models.prometheus import PromResponse, sample_value


def test_instant_vector_envelope():
    envelope = PromResponse.model_validate(
        {
            "status": "success",
            "data": {
                "resultType": "vector",
                "result": [{"metric": {"namespace": "prod"}, "value": [1700000000.123, "0.25"]}],
            },
        }
    )
    series = envelope.series
    assert envelope.data.result_type == "vector"
    assert series[0].label("kubernetes_namespace", "namespace") == "prod"
    assert series[0].instant() == 0.25


def test_range_matrix_drops_unparsable_samples():
    envelope = PromResponse.model_validate(
        {
            "status": "success",
            "data": {
                "resultType": "matrix",
                "result": [{"metric": {"node": "n1"}, "values": [[1, "1"], [2, "NaN"], [3, "+Inf"], [4, "4"]]}],
            },
        }
    )
    assert envelope.series[0].samples() == [(1, 1.0), (4, 4.0)]


def test_error_envelope_has_no_series():
    envelope = PromResponse.model_validate({"status": "error", "errorType": "bad_data", "error": "parse error"})
    assert envelope.error_type == "bad_data"
    assert envelope.series == []


def test_unknown_status_is_rejected():
    with pytest.raises(ValidationError):
        PromResponse.model_validate({"status": "maybe"})


@pytest.mark.parametrize("raw, expected", [("1.5", 1.5), ("NaN", None), ("-Inf", None), ("x", None), (None, None)])
def test_sample_value(raw, expected):
    assert sample_value(raw) == expected
