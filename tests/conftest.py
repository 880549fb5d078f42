"""
Pytest configuration and fixtures for HMAC authorization tests
"""
import pytest

from hmac_auth.config import AppSettings, VerificationContext
from hmac_auth.models.connection import Configuration, ConfigStore, RequestFields


# Values shared with existing signers; the signature below was produced with
# base64_encode(hash_hmac('sha1', '1373563683000rdp10000001hostname10.2.3.4port3389', 'secret', true))
TEST_SECRET = "secret"
TEST_SERVER_ID = "10000001"
TEST_TIMESTAMP = "1373563683000"
TEST_SIGNATURE = "uvPcq+epk1wDfxlM5UOZp3bDJ2Y="
TEST_CONNECTION = "test-pc"
ONE_MINUTE = 60000

TEST_CONFIG_XML = """<configs>
    <config name="test-pc" protocol="rdp">
        <param name="hostname" value="10.2.3.4"/>
        <param name="port" value="3389"/>
        <param name="username" value="guest"/>
    </config>
    <config name="other-connection" protocol="rdp">
        <param name="hostname" value="10.2.3.5"/>
        <param name="port" value="3389"/>
    </config>
    <config name="vnc-desk" protocol="vnc">
        <param name="hostname" value="10.2.3.6"/>
    </config>
</configs>
"""


class FakeClock:
    """Controllable epoch-millisecond clock"""

    def __init__(self, now: int):
        self.now = now

    def __call__(self) -> int:
        return self.now


@pytest.fixture
def context():
    """Verification context matching the reference signer"""
    return VerificationContext(
        shared_secret=TEST_SECRET.encode(),
        server_id=TEST_SERVER_ID,
        timestamp_age_limit=ONE_MINUTE,
    )


@pytest.fixture
def clock():
    """Clock set to the moment the test signature was created"""
    return FakeClock(int(TEST_TIMESTAMP))


@pytest.fixture
def store():
    """Store with the reference configuration and two others"""
    return ConfigStore(configurations={
        "test-pc": Configuration(
            protocol="rdp",
            parameters={"hostname": "10.2.3.4", "port": "3389", "username": "guest"}
        ),
        "other-connection": Configuration(
            protocol="rdp",
            parameters={"hostname": "10.2.3.5", "port": "3389"}
        ),
        "vnc-desk": Configuration(protocol="vnc", parameters={"hostname": "10.2.3.6"}),
    })


@pytest.fixture
def valid_fields():
    """Request fields carrying the reference signature"""
    return RequestFields(
        connection_id=TEST_CONNECTION,
        timestamp=TEST_TIMESTAMP,
        signature=TEST_SIGNATURE,
    )


@pytest.fixture
def config_file(tmp_path):
    """hmac-config.xml written to a temporary directory"""
    path = tmp_path / "hmac-config.xml"
    path.write_text(TEST_CONFIG_XML, encoding="utf-8")
    return path


@pytest.fixture
def app_settings(config_file):
    return AppSettings(config_file=str(config_file))


@pytest.fixture
def clean_environment(monkeypatch):
    """Remove all HMAC settings from the environment"""
    for var in [
        "HMAC_SECRET_KEY",
        "HMAC_SERVER_ID",
        "HMAC_TIMESTAMP_AGE_LIMIT",
        "HMAC_SIGNED_PARAMETERS",
        "HMAC_HASH_ALGORITHM",
        "HMAC_CONFIG_FILE",
        "HMAC_CONFIG_CACHE",
        "HMAC_DEBUG",
        "GUACAMOLE_HOME",
    ]:
        monkeypatch.delenv(var, raising=False)
    return monkeypatch
