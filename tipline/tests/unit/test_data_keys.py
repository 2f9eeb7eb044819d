from __future__ import annotations

import asyncio

import pytest
from sqlalchemy import select

from tipline.core.errors import CompanyNotFoundError, DataKeyExistsError, KeyUnwrapError
from tipline.domain.models import AuditEvent, Company
from tipline.persistence.db import SessionLocal
from tipline.services.crypto import (
    company_encryption_status,
    decrypt_field,
    encrypt_field,
    generate_data_key,
    get_data_key,
    verify_data_key,
)
from tipline.services.crypto.cipher import generate_key
from tipline.tests.utils.seed import create_company


pytestmark = pytest.mark.usefixtures("db_schema")


@pytest.mark.asyncio
async def test_company_without_key_reports_unconfigured() -> None:
    company_id = await create_company()
    async with SessionLocal() as session:
        assert await get_data_key(session, company_id) is None
        assert await company_encryption_status(session, company_id) is False
        assert await verify_data_key(session, company_id, generate_key()) is False


@pytest.mark.asyncio
async def test_generated_key_is_stored_wrapped_and_round_trips() -> None:
    company_id = await create_company()
    async with SessionLocal() as session:
        raw_key = await generate_data_key(session, company_id, actor_id="admin-1", actor_role="company_admin")

    async with SessionLocal() as session:
        company = await session.get(Company, company_id)
        assert company is not None
        assert company.data_encryption_key
        assert company.data_encryption_iv
        assert raw_key not in company.data_encryption_key
        assert await get_data_key(session, company_id) == raw_key
        assert await company_encryption_status(session, company_id) is True
        assert await verify_data_key(session, company_id, raw_key) is True
        assert await verify_data_key(session, company_id, raw_key.upper()) is True
        assert await verify_data_key(session, company_id, generate_key()) is False
        assert await verify_data_key(session, company_id, "garbage") is False
        events = (
            await session.execute(select(AuditEvent).where(AuditEvent.company_id == company_id))
        ).scalars().all()
    assert [event.event_type for event in events] == ["crypto.data_key.generated"]


@pytest.mark.asyncio
async def test_second_generation_is_refused_without_confirmation() -> None:
    company_id = await create_company()
    async with SessionLocal() as session:
        first = await generate_data_key(session, company_id)
    async with SessionLocal() as session:
        with pytest.raises(DataKeyExistsError):
            await generate_data_key(session, company_id)
    async with SessionLocal() as session:
        assert await get_data_key(session, company_id) == first


@pytest.mark.asyncio
async def test_confirmed_replacement_orphans_old_ciphertext() -> None:
    company_id = await create_company()
    async with SessionLocal() as session:
        first = await generate_data_key(session, company_id)
    sealed = encrypt_field("sealed under the first key", first)
    async with SessionLocal() as session:
        second = await generate_data_key(session, company_id, confirm_replace=True)
    assert second != first
    async with SessionLocal() as session:
        assert await get_data_key(session, company_id) == second
    assert decrypt_field(sealed, first) == "sealed under the first key"


@pytest.mark.asyncio
async def test_concurrent_generation_establishes_exactly_one_key() -> None:
    company_id = await create_company()

    async def _attempt() -> str | None:
        async with SessionLocal() as session:
            try:
                return await generate_data_key(session, company_id)
            except DataKeyExistsError:
                return None

    results = await asyncio.gather(_attempt(), _attempt(), _attempt())
    winners = [key for key in results if key is not None]
    assert len(winners) == 1
    async with SessionLocal() as session:
        assert await get_data_key(session, company_id) == winners[0]


@pytest.mark.asyncio
async def test_unknown_company_raises() -> None:
    async with SessionLocal() as session:
        with pytest.raises(CompanyNotFoundError):
            await generate_data_key(session, "00000000-0000-0000-0000-000000000000")
        with pytest.raises(CompanyNotFoundError):
            await get_data_key(session, "00000000-0000-0000-0000-000000000000")


@pytest.mark.asyncio
async def test_corrupt_wrapped_key_raises_unwrap_error() -> None:
    company_id = await create_company()
    async with SessionLocal() as session:
        await generate_data_key(session, company_id)
    async with SessionLocal() as session:
        company = await session.get(Company, company_id)
        assert company is not None
        company.data_encryption_key = "AAAA" + company.data_encryption_key[4:]
        await session.commit()
    async with SessionLocal() as session:
        with pytest.raises(KeyUnwrapError):
            await get_data_key(session, company_id)


@pytest.mark.asyncio
async def test_partial_key_record_raises_unwrap_error() -> None:
    company_id = await create_company()
    async with SessionLocal() as session:
        await generate_data_key(session, company_id)
    async with SessionLocal() as session:
        company = await session.get(Company, company_id)
        assert company is not None
        company.data_encryption_iv = None
        await session.commit()
    async with SessionLocal() as session:
        with pytest.raises(KeyUnwrapError):
            await get_data_key(session, company_id)


@pytest.mark.asyncio
async def test_confirmed_first_generation_is_audited_as_generated() -> None:
    company_id = await create_company()
    async with SessionLocal() as session:
        await generate_data_key(session, company_id, confirm_replace=True)
    async with SessionLocal() as session:
        events = (
            await session.execute(
                select(AuditEvent.event_type).where(AuditEvent.event_type.like("crypto.data_key.%"))
            )
        ).scalars().all()
    assert events == ["crypto.data_key.generated"]
