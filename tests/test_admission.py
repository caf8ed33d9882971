"""
Tests for admission.py: one slot, leases released on every path
"""

import pytest
from proton_quic.server.admission import AdmissionBusy, AdmissionControl


@pytest.mark.asyncio
async def test_single_slot():
    admission = AdmissionControl()
    lease = await admission.try_acquire("first")
    assert admission.occupied
    with pytest.raises(AdmissionBusy):
        await admission.try_acquire("second")
    await admission.release(lease)
    assert not admission.occupied
    await admission.try_acquire("third")


@pytest.mark.asyncio
async def test_release_is_idempotent_and_stale_lease_is_harmless():
    admission = AdmissionControl()
    old = await admission.try_acquire("old")
    await admission.release(old)
    new = await admission.try_acquire("new")
    await admission.release(old)
    assert admission.occupied
    await admission.release(new)
    await admission.release(new)
    assert not admission.occupied


@pytest.mark.asyncio
async def test_attach_session():
    admission = AdmissionControl()
    lease = await admission.try_acquire("conn")
    assert admission.active_session is None
    await admission.attach(lease, "session")
    assert admission.active_session == "session"
    await admission.release(lease)
    assert admission.active_session is None
    with pytest.raises(RuntimeError):
        await admission.attach(lease, "session")


@pytest.mark.asyncio
async def test_context_manager_releases_on_error():
    admission = AdmissionControl()
    with pytest.raises(KeyError):
        async with admission.acquire("conn"):
            assert admission.occupied
            raise KeyError("boom")
    assert not admission.occupied


@pytest.mark.asyncio
async def test_reset_clears_slot():
    admission = AdmissionControl()
    lease = await admission.try_acquire("conn")
    await admission.reset()
    assert not admission.occupied
    assert lease.released
