import os
from unittest.mock import MagicMock, patch

import pytest

from ec2_imds import (
    IamInfo,
    MetadataClient,
    MetadataHTTPError,
    MetadataParseError,
    MetadataTransportError,
)


def test_get_success(transport):  # type: ignore
    client = MetadataClient(transport=transport)

    metadata = client.get()

    assert metadata.instance_id == "i-0123456789abcdef0"
    assert metadata.ami_id == "ami-0abcdef1234567890"
    assert metadata.account_id == "123456789012"
    assert metadata.instance_type == "t3.micro"
    assert metadata.availability_zone == "us-east-1a"
    assert metadata.region == "us-east-1"
    assert metadata.hostname == "ip-10-0-0-12.ec2.internal"
    assert metadata.local_ipv4 == "10.0.0.12"
    assert metadata.public_ipv4 == "3.80.1.2"
    assert metadata.security_groups == frozenset({"default", "web"})
    assert metadata.iam_info == IamInfo(
        code="Success",
        instance_profile_arn="arn:aws:iam::123:instance-profile/role",
    )
    assert metadata.iam_info.instance_profile_arn == (  # type: ignore
        "arn:aws:iam::123:instance-profile/role"
    )
    assert metadata.iam_role == "role"


def test_requests_carry_token(transport):  # type: ignore
    MetadataClient(transport=transport, token_ttl=300).get()

    token_request = transport.requests[0]
    assert token_request.method == "PUT"
    assert token_request.path == "/latest/api/token"
    assert token_request.headers == {"X-aws-ec2-metadata-token-ttl-seconds": "300"}

    for request in transport.requests[1:]:
        assert request.method == "GET"
        assert request.path.startswith("/latest/meta-data/")
        assert request.headers == {"X-aws-ec2-metadata-token": "ABC123"}


def test_token_failure_stops_before_fields(routes, transport):  # type: ignore
    routes["/latest/api/token"] = (403, b"Forbidden")

    with pytest.raises(MetadataHTTPError) as exc_info:
        MetadataClient(transport=transport).get()

    assert exc_info.value.status == 403
    assert exc_info.value.path == "/latest/api/token"
    assert len(transport.requests) == 1


def test_field_failure(routes, transport):  # type: ignore
    routes["/latest/meta-data/instance-type"] = (500, b"Internal Error")

    with pytest.raises(MetadataHTTPError, match="instance-type: HTTP 500"):
        MetadataClient(transport=transport).get()


def test_missing_required_field(routes, transport):  # type: ignore
    del routes["/latest/meta-data/mac"]

    with pytest.raises(MetadataHTTPError) as exc_info:
        MetadataClient(transport=transport).get()

    assert exc_info.value.status == 404


def test_unparseable_json_field(routes, transport):  # type: ignore
    routes["/latest/meta-data/iam/info"] = b"<html>not json</html>"

    with pytest.raises(MetadataParseError, match="iam/info"):
        MetadataClient(transport=transport).get()


def test_blank_role_name(routes, transport):  # type: ignore
    routes["/latest/meta-data/iam/security-credentials/"] = b"\n"

    with pytest.raises(MetadataParseError, match="Empty role name"):
        MetadataClient(transport=transport).get()


def test_no_instance_profile(routes, transport):  # type: ignore
    del routes["/latest/meta-data/iam/info"]
    del routes["/latest/meta-data/public-ipv4"]
    del routes["/latest/meta-data/public-hostname"]

    metadata = MetadataClient(transport=transport).get()

    assert metadata.iam_info is None
    assert metadata.iam_role is None
    assert metadata.public_ipv4 is None
    assert metadata.public_hostname is None
    paths = [request.path for request in transport.requests]
    assert "/latest/meta-data/iam/security-credentials/" not in paths


def test_get_is_repeatable(transport):  # type: ignore
    client = MetadataClient(transport=transport)

    first = client.get()
    count = len(transport.requests)
    second = client.get()

    assert first == second
    # every call requests a new token and refetches every field
    assert len(transport.requests) == 2 * count
    assert transport.requests[count].path == "/latest/api/token"


def test_get_path(transport):  # type: ignore
    client = MetadataClient(transport=transport)

    token = client.get_token()

    assert token == "ABC123"
    assert client.get_path("instance-id", token) == b"i-0123456789abcdef0"


@patch.dict(os.environ, {}, clear=True)
@patch("http.client.HTTPConnection")
def test_unreachable_host(mock_http: MagicMock):
    mock_http.return_value.request.side_effect = ConnectionRefusedError(
        "Connection refused"
    )

    with pytest.raises(MetadataTransportError, match="169.254.169.254"):
        MetadataClient().get()

    mock_http.assert_called_once_with("169.254.169.254", port=80, timeout=1)


@patch.dict(os.environ, {}, clear=True)
@patch("http.client.HTTPConnection")
def test_default_transport(mock_http: MagicMock):
    mock_conn = MagicMock()
    mock_http.return_value = mock_conn

    mock_response = MagicMock()
    mock_response.status = 200
    mock_response.reason = "OK"
    mock_response.read.return_value = b"mock-token"
    mock_conn.getresponse.return_value = mock_response

    client = MetadataClient(endpoint="http://localhost:1338", timeout=2)

    assert client.get_token() == "mock-token"
    mock_http.assert_called_once_with("localhost", port=1338, timeout=2)
    mock_conn.request.assert_called_once_with(
        "PUT",
        "/latest/api/token",
        headers={"X-aws-ec2-metadata-token-ttl-seconds": "21600"},
    )
    mock_conn.close.assert_called_once()
