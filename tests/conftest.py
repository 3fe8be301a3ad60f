from typing import Dict, List, Tuple, Union

import pytest

from ec2_imds.transport import Request, Response

TOKEN = "ABC123"

IAM_INFO_BODY = (
    b'{"Code":"Success","InstanceProfileArn":"arn:aws:iam::123:instance-profile/role"}'
)


class FakeTransport:
    def __init__(self, routes: Dict[str, Union[bytes, Tuple[int, bytes]]]):
        self.routes = routes
        self.requests: List[Request] = []

    def send(self, request: Request) -> Response:
        self.requests.append(request)
        route = self.routes.get(request.path, (404, b"Not Found"))
        if isinstance(route, bytes):
            route = (200, route)
        status, body = route
        return Response(status=status, body=body, reason="OK" if status == 200 else "Error")


@pytest.fixture
def routes() -> Dict[str, Union[bytes, Tuple[int, bytes]]]:
    return {
        "/latest/api/token": TOKEN.encode(),
        "/latest/meta-data/instance-id": b"i-0123456789abcdef0",
        "/latest/meta-data/ami-id": b"ami-0abcdef1234567890",
        "/latest/meta-data/identity-credentials/ec2/info": (
            b'{"Code":"Success","LastUpdated":"2024-01-01T00:00:00Z","AccountId":"123456789012"}'
        ),
        "/latest/meta-data/instance-type": b"t3.micro",
        "/latest/meta-data/placement/availability-zone": b"us-east-1a",
        "/latest/meta-data/hostname": b"ip-10-0-0-12.ec2.internal",
        "/latest/meta-data/local-hostname": b"ip-10-0-0-12.ec2.internal",
        "/latest/meta-data/public-hostname": b"ec2-3-80-1-2.compute-1.amazonaws.com",
        "/latest/meta-data/local-ipv4": b"10.0.0.12",
        "/latest/meta-data/public-ipv4": b"3.80.1.2",
        "/latest/meta-data/mac": b"0e:1a:2b:3c:4d:5e",
        "/latest/meta-data/security-groups": b"default\nweb",
        "/latest/meta-data/iam/info": IAM_INFO_BODY,
        "/latest/meta-data/iam/security-credentials/": b"role",
    }


@pytest.fixture
def transport(routes) -> FakeTransport:  # type: ignore
    return FakeTransport(routes)
