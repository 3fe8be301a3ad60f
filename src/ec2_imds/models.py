import re
from typing import FrozenSet, Mapping, Optional, Tuple

import msgspec

from .errors import MetadataParseError

INSTANCE_ID = "instance-id"
AMI_ID = "ami-id"
IDENTITY_CREDENTIALS_INFO = "identity-credentials/ec2/info"
INSTANCE_TYPE = "instance-type"
AVAILABILITY_ZONE = "placement/availability-zone"
HOSTNAME = "hostname"
LOCAL_HOSTNAME = "local-hostname"
PUBLIC_HOSTNAME = "public-hostname"
LOCAL_IPV4 = "local-ipv4"
PUBLIC_IPV4 = "public-ipv4"
MAC = "mac"
SECURITY_GROUPS = "security-groups"
IAM_INFO = "iam/info"
IAM_ROLE = "iam/security-credentials/"

# Fetch order for a full ``get()``; IAM_ROLE is only requested when IAM_INFO exists.
METADATA_PATHS: Tuple[str, ...] = (
    INSTANCE_ID,
    AMI_ID,
    IDENTITY_CREDENTIALS_INFO,
    INSTANCE_TYPE,
    AVAILABILITY_ZONE,
    HOSTNAME,
    LOCAL_HOSTNAME,
    PUBLIC_HOSTNAME,
    LOCAL_IPV4,
    PUBLIC_IPV4,
    MAC,
    SECURITY_GROUPS,
    IAM_INFO,
)

# Paths an instance may legitimately not have (404 instead of a value).
OPTIONAL_PATHS: FrozenSet[str] = frozenset(
    {PUBLIC_HOSTNAME, PUBLIC_IPV4, IAM_INFO, IAM_ROLE}
)

# us-east-1a, us-gov-west-1b, us-west-2-lax-1a (local zone),
# us-east-1-wl1-bos-wlz-1 (wavelength zone)
_AZ_PATTERN = re.compile(
    r"^(?P<region>[a-z]{2}(?:-[a-z]+)+-\d+)(?:[a-z]|-[a-z0-9]+(?:-[a-z0-9]+)*)$"
)


class IamInfo(msgspec.Struct, frozen=True, rename="pascal"):
    code: str
    instance_profile_arn: str
    instance_profile_id: Optional[str] = None
    last_updated: Optional[str] = None

    @property
    def instance_profile_name(self) -> str:
        return self.instance_profile_arn.rsplit("/", 1)[-1]


class IdentityCredentialsInfo(msgspec.Struct, frozen=True, rename="pascal"):
    code: str
    account_id: str
    last_updated: Optional[str] = None


class InstanceMetadata(msgspec.Struct, frozen=True):
    """
    Metadata of the running EC2 instance, as reported by IMDSv2.

    Built once per ``get()`` call, every required field is populated.
    ``public_hostname``, ``public_ipv4``, ``iam_info`` and ``iam_role`` are
    ``None`` when the instance has no public address or no instance profile.
    """

    instance_id: str
    ami_id: str
    account_id: str
    instance_type: str
    availability_zone: str
    region: str
    hostname: str
    local_hostname: str
    local_ipv4: str
    mac: str
    security_groups: FrozenSet[str]
    public_hostname: Optional[str] = None
    public_ipv4: Optional[str] = None
    iam_info: Optional[IamInfo] = None
    iam_role: Optional[str] = None


iam_info_decoder = msgspec.json.Decoder(IamInfo)
identity_credentials_decoder = msgspec.json.Decoder(IdentityCredentialsInfo)


def region_from_availability_zone(availability_zone: str) -> str:
    match = _AZ_PATTERN.match(availability_zone)
    if match is None:
        raise MetadataParseError(
            AVAILABILITY_ZONE, f"Unknown availability zone {availability_zone!r}"
        )
    return match.group("region")


def _text(path: str, body: bytes) -> str:
    try:
        value = body.decode("utf-8")
    except UnicodeDecodeError as err:
        raise MetadataParseError(path, f"Body is not valid UTF-8: {err}") from err
    if not value:
        raise MetadataParseError(path, "Empty body")
    return value


def _decode(path: str, body: bytes, decoder: msgspec.json.Decoder):  # type: ignore
    try:
        return decoder.decode(body)
    except msgspec.DecodeError as err:
        # ValidationError is a DecodeError subclass
        raise MetadataParseError(path, f"Unexpected JSON body: {err}") from err


def parse_iam_info(body: bytes) -> IamInfo:
    info: IamInfo = _decode(IAM_INFO, body, iam_info_decoder)
    if info.code != "Success":
        raise MetadataParseError(IAM_INFO, f"IAM info code is {info.code!r}")
    return info


def parse_account_id(body: bytes) -> str:
    info: IdentityCredentialsInfo = _decode(
        IDENTITY_CREDENTIALS_INFO, body, identity_credentials_decoder
    )
    if info.code != "Success":
        raise MetadataParseError(
            IDENTITY_CREDENTIALS_INFO, f"Identity credentials code is {info.code!r}"
        )
    return info.account_id


def parse_security_groups(body: bytes) -> FrozenSet[str]:
    text = _text(SECURITY_GROUPS, body)
    return frozenset(line for line in text.splitlines() if line)


def parse_iam_role(body: bytes) -> str:
    # One role per line; an instance profile carries exactly one role.
    text = _text(IAM_ROLE, body)
    role = text.splitlines()[0].strip()
    if not role:
        raise MetadataParseError(IAM_ROLE, "Empty role name")
    return role


def build_metadata(bodies: Mapping[str, Optional[bytes]]) -> InstanceMetadata:
    """
    Assemble :class:`InstanceMetadata` from raw response bodies.

    :param bodies: Metadata path to response body. Optional paths map to
        ``None`` when the service reported them absent.
    :raises MetadataParseError: If any body has the wrong shape or a required
        path is missing from ``bodies``.
    """

    def required(path: str) -> bytes:
        body = bodies.get(path)
        if body is None:
            raise MetadataParseError(path, "Missing required field")
        return body

    def optional_text(path: str) -> Optional[str]:
        body = bodies.get(path)
        return None if body is None else _text(path, body)

    availability_zone = _text(AVAILABILITY_ZONE, required(AVAILABILITY_ZONE))

    iam_body = bodies.get(IAM_INFO)
    iam_role_body = bodies.get(IAM_ROLE)

    return InstanceMetadata(
        instance_id=_text(INSTANCE_ID, required(INSTANCE_ID)),
        ami_id=_text(AMI_ID, required(AMI_ID)),
        account_id=parse_account_id(required(IDENTITY_CREDENTIALS_INFO)),
        instance_type=_text(INSTANCE_TYPE, required(INSTANCE_TYPE)),
        availability_zone=availability_zone,
        region=region_from_availability_zone(availability_zone),
        hostname=_text(HOSTNAME, required(HOSTNAME)),
        local_hostname=_text(LOCAL_HOSTNAME, required(LOCAL_HOSTNAME)),
        local_ipv4=_text(LOCAL_IPV4, required(LOCAL_IPV4)),
        mac=_text(MAC, required(MAC)),
        security_groups=parse_security_groups(required(SECURITY_GROUPS)),
        public_hostname=optional_text(PUBLIC_HOSTNAME),
        public_ipv4=optional_text(PUBLIC_IPV4),
        iam_info=None if iam_body is None else parse_iam_info(iam_body),
        iam_role=None if iam_role_body is None else parse_iam_role(iam_role_body),
    )
