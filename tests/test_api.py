"""Tests for the FastAPI endpoints."""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from solders.pubkey import Pubkey

from relay_depository.api.app import create_app
from relay_depository.config import get_settings
from relay_depository.constants import TOKEN_PROGRAM_ID
from relay_depository.depository import RelayDepository

from conftest import CHAIN_ID, signer_key

ORDER_ID = "ab" * 32


async def _client_for(depository):
    app = create_app(depository)
    transport = ASGITransport(app=app)
    return AsyncClient(transport=transport, base_url="http://test")


@pytest_asyncio.fixture
async def client(initialized):
    """Client against an initialized depository."""
    async with await _client_for(initialized) as ac:
        yield ac


@pytest_asyncio.fixture
async def bare_client(depository):
    """Client against a depository nobody initialized."""
    async with await _client_for(depository) as ac:
        yield ac


def _transfer_body(request, signed, **extra) -> dict:
    body = {
        "request": {
            "recipient": str(request.recipient),
            "token": str(request.token) if request.token else None,
            "amount": request.amount,
            "nonce": request.nonce,
            "expiration": request.expiration,
            "domain_separator": request.domain_separator.hex(),
        },
        "signature_instruction": signed.to_instruction().data.hex(),
    }
    body.update(extra)
    return body


class TestHealthEndpoints:
    """Tests for health check endpoints."""

    @pytest.mark.asyncio
    async def test_health_check(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["service"] == "relay-depository"

    @pytest.mark.asyncio
    async def test_detailed_health(self, client):
        response = await client.get("/health/detailed")

        assert response.status_code == 200
        data = response.json()
        assert data["initialized"] is True
        assert "environment" in data["config"]

    @pytest.mark.asyncio
    async def test_detailed_health_uninitialized(self, bare_client):
        response = await bare_client.get("/health/detailed")
        assert response.json()["initialized"] is False


class TestVaultEndpoints:
    @pytest.mark.asyncio
    async def test_config_not_initialized(self, bare_client):
        response = await bare_client.get("/api/v1/config")
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_config(self, client, initialized, owner, allocator, domain_separator):
        response = await client.get("/api/v1/config")

        assert response.status_code == 200
        data = response.json()
        assert data["owner"] == str(owner)
        assert data["allocator"] == str(allocator.public_key)
        assert data["vault"] == str(initialized.vault_address)
        assert data["chain_id"] == CHAIN_ID
        assert data["domain_separator"] == domain_separator.hex()

    @pytest.mark.asyncio
    async def test_vault_balance(self, client, initialized, depositor):
        await initialized.runtime.airdrop(depositor, 700)
        await initialized.deposit_native(depositor, 700, bytes(32))

        response = await client.get("/api/v1/vault")

        assert response.status_code == 200
        data = response.json()
        assert data["lamports"] == 700
        assert data["transferable"] == 700
        assert data["token_balance"] is None

    @pytest.mark.asyncio
    async def test_vault_bad_mint(self, client):
        response = await client.get("/api/v1/vault", params={"mint": "not-a-key"})
        assert response.status_code == 422


class TestDepositEndpoints:
    @pytest.mark.asyncio
    async def test_deposit_address(self, client, initialized, depositor):
        response = await client.get(
            "/api/v1/deposit-address", params={"id": ORDER_ID, "depositor": str(depositor)}
        )

        assert response.status_code == 200
        data = response.json()
        expected = initialized.deposit_address(bytes.fromhex(ORDER_ID), None, depositor)
        assert data["deposit_address"] == str(expected)
        assert data["token"] is None
        assert data["token_account"] is None

    @pytest.mark.asyncio
    async def test_token_deposit_address(self, client, initialized, depositor):
        mint = Pubkey.new_unique()
        response = await client.get(
            "/api/v1/deposit-address",
            params={"id": ORDER_ID, "depositor": str(depositor), "token": str(mint)},
        )

        data = response.json()
        expected = initialized.deposit_address(bytes.fromhex(ORDER_ID), mint, depositor)
        assert data["deposit_address"] == str(expected)
        assert data["token_account"] is not None

    @pytest.mark.asyncio
    async def test_deposit_address_bad_id(self, client, depositor):
        response = await client.get(
            "/api/v1/deposit-address", params={"id": "abcd", "depositor": str(depositor)}
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_simulate_then_sweep(self, client, initialized, depositor):
        response = await client.post(
            "/api/v1/deposits/simulate",
            json={"id": ORDER_ID, "depositor": str(depositor), "amount": 250},
        )
        assert response.status_code == 200
        assert response.json()["balance"] == 250

        response = await client.post(
            "/api/v1/sweeps", json={"id": ORDER_ID, "depositor": str(depositor)}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["amount"] == 250
        assert data["token"] is None
        assert await initialized.vault_balance() == 250

    @pytest.mark.asyncio
    async def test_token_sweep_charges_relayer(self, client, initialized, depositor, relayer):
        """A payer named in the body is ignored; the relayer funds the vault account."""
        mint = Pubkey.new_unique()
        await initialized.runtime.create_mint(mint, TOKEN_PROGRAM_ID)
        await initialized.runtime.airdrop(relayer, 1_000)
        bystander = signer_key()
        await initialized.runtime.airdrop(bystander, 5_000)
        await client.post(
            "/api/v1/deposits/simulate",
            json={"id": ORDER_ID, "depositor": str(depositor), "amount": 250, "token": str(mint)},
        )

        response = await client.post(
            "/api/v1/sweeps",
            json={
                "id": ORDER_ID,
                "depositor": str(depositor),
                "token": str(mint),
                "payer": str(bystander),
            },
        )

        assert response.status_code == 200
        assert response.json()["amount"] == 250
        assert await initialized.vault_token_balance(mint) == 250
        assert await initialized.runtime.get_balance(bystander) == 5_000
        assert await initialized.runtime.get_balance(relayer) == 900

    @pytest.mark.asyncio
    async def test_simulate_rejects_zero(self, client, depositor):
        response = await client.post(
            "/api/v1/deposits/simulate",
            json={"id": ORDER_ID, "depositor": str(depositor), "amount": 0},
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_sweep_empty_address(self, client, depositor):
        response = await client.post(
            "/api/v1/sweeps", json={"id": ORDER_ID, "depositor": str(depositor)}
        )

        assert response.status_code == 400
        assert response.json()["error"] == "InsufficientBalance"


class TestTransferEndpoints:
    @pytest.mark.asyncio
    async def test_execute_and_status(
        self, client, funded, allocator, relayer, make_request
    ):
        request = make_request()
        signed = await allocator.sign_request(request)

        response = await client.post(
            "/api/v1/transfers", json=_transfer_body(request, signed)
        )

        assert response.status_code == 200
        data = response.json()
        assert data["request_hash"] == request.get_hash().hex()
        assert data["used_request"] == str(funded.used_request_address(request))
        assert data["executor"] == str(relayer)
        assert await funded.vault_balance() == 600

        status = await client.get(f"/api/v1/transfers/{data['request_hash']}")
        assert status.status_code == 200
        assert status.json()["used"] is True

    @pytest.mark.asyncio
    async def test_replay_rejected(self, client, funded, allocator, make_request):
        request = make_request()
        signed = await allocator.sign_request(request)
        body = _transfer_body(request, signed)

        await client.post("/api/v1/transfers", json=body)
        response = await client.post("/api/v1/transfers", json=body)

        assert response.status_code == 400
        assert response.json()["error"] == "TransferRequestAlreadyUsed"
        assert await funded.vault_balance() == 600

    @pytest.mark.asyncio
    async def test_missing_signature(self, client, funded, allocator, make_request):
        request = make_request()
        body = _transfer_body(request, await allocator.sign_request(request))
        body["signature_instruction"] = None

        response = await client.post("/api/v1/transfers", json=body)

        assert response.status_code == 400
        assert response.json()["error"] == "MissingSignature"

    @pytest.mark.asyncio
    async def test_forged_signature(self, client, funded, allocator, make_request):
        request = make_request()
        body = _transfer_body(request, await allocator.sign_request(request))
        data = bytearray.fromhex(body["signature_instruction"])
        data[-1] ^= 0xFF
        body["signature_instruction"] = data.hex()

        response = await client.post("/api/v1/transfers", json=body)

        assert response.status_code == 400
        assert response.json()["error"] == "SignatureVerificationFailed"
        assert await funded.vault_balance() == 1_000

    @pytest.mark.asyncio
    async def test_bad_recipient(self, client, funded, allocator, make_request):
        request = make_request()
        body = _transfer_body(request, await allocator.sign_request(request))
        body["request"]["recipient"] = "nope"

        response = await client.post("/api/v1/transfers", json=body)
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_unknown_request_status(self, client):
        response = await client.get(f"/api/v1/transfers/{'00' * 32}")
        assert response.status_code == 200
        assert response.json()["used"] is False

    @pytest.mark.asyncio
    async def test_status_bad_hash(self, client):
        response = await client.get("/api/v1/transfers/abcd")
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_caller_cannot_pick_who_pays(
        self, client, initialized, allocator, relayer, recipient, make_request
    ):
        """Naming another identity in the body does not make it sign or pay."""
        mint = Pubkey.new_unique()
        await initialized.runtime.create_mint(mint, TOKEN_PROGRAM_ID)
        await initialized.runtime.mint_to(mint, initialized.vault_address, 1_000)
        await initialized.runtime.airdrop(relayer, 1_000)
        bystander = signer_key()
        await initialized.runtime.airdrop(bystander, 5_000)

        request = make_request(token=mint, amount=300)
        body = _transfer_body(
            request,
            await allocator.sign_request(request),
            executor=str(bystander),
            mint=str(mint),
            token_program=str(TOKEN_PROGRAM_ID),
        )
        response = await client.post("/api/v1/transfers", json=body)

        assert response.status_code == 200
        assert response.json()["executor"] == str(relayer)
        assert await initialized.runtime.get_balance(bystander) == 5_000
        # relayer paid the recipient token account rent
        assert await initialized.runtime.get_balance(relayer) == 900
        assert await initialized.runtime.get_token_balance(recipient, mint) == 300

    @pytest.mark.asyncio
    async def test_relayer_not_configured(
        self, session_factory, settings, clock, owner, allocator, make_request
    ):
        depository = RelayDepository.create(
            session_factory, settings=settings.model_copy(update={"relayer": None}), clock=clock
        )
        await depository.initialize(owner, allocator.public_key, chain_id=CHAIN_ID)
        request = make_request()

        async with await _client_for(depository) as ac:
            response = await ac.post(
                "/api/v1/transfers",
                json=_transfer_body(request, await allocator.sign_request(request)),
            )

        assert response.status_code == 503
        assert not await depository.is_request_used(request)


class TestAdminEndpoints:
    @pytest.mark.asyncio
    async def test_allowlist_lifecycle(self, client):
        program = str(Pubkey.new_unique())

        response = await client.get("/admin/allowlist")
        assert response.json()["programs"] == []

        response = await client.post("/admin/allowlist", json={"program": program})
        assert response.status_code == 200
        assert response.json()["programs"] == [program]

        response = await client.delete(f"/admin/allowlist/{program}")
        assert response.json()["programs"] == []

        response = await client.delete(f"/admin/allowlist/{program}")
        assert response.status_code == 400
        assert response.json()["error"] == "ProgramNotAllowed"

    @pytest.mark.asyncio
    async def test_allowlist_not_initialized(self, bare_client):
        response = await bare_client.post(
            "/admin/allowlist", json={"program": str(Pubkey.new_unique())}
        )
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_rotate_allocator(self, client, initialized):
        new_allocator = str(signer_key())

        response = await client.post("/admin/allocator", json={"allocator": new_allocator})

        assert response.status_code == 200
        assert (await initialized.get_config()).allocator == new_allocator

    @pytest.mark.asyncio
    async def test_events(self, client, funded):
        response = await client.get("/admin/events", params={"event_type": "deposit"})

        assert response.status_code == 200
        events = response.json()
        assert len(events) == 1
        assert events[0]["event_type"] == "deposit"
        assert events[0]["payload"]["amount"] == 1_000

    @pytest.mark.asyncio
    async def test_admin_token_required(self, client, monkeypatch):
        monkeypatch.setenv("ADMIN_TOKEN", "s3cret")
        get_settings.cache_clear()
        try:
            denied = await client.get("/admin/allowlist")
            allowed = await client.get("/admin/allowlist", headers={"X-Admin-Token": "s3cret"})
        finally:
            monkeypatch.setenv("ADMIN_TOKEN", "")
            get_settings.cache_clear()

        assert denied.status_code == 401
        assert allowed.status_code == 200
