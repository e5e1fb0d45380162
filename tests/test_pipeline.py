"""
Unit tests for the admission pipeline
"""
import json
import re

import pytest
from unittest.mock import AsyncMock, MagicMock
from sqlalchemy import select

from verifylens.models import ApiTransaction, ApiUsageLog, TransactionType, VerificationCache
from verifylens.models.api_usage import USER_AGENT_MAX_LENGTH
from verifylens.services.pipeline import AdmissionPipeline, PipelineRequest
from verifylens.services.verification_provider import VerificationOutcome


def _request(api_key, body=None, raw=None, user_agent="pytest", ip_address="203.0.113.7"):
    payload = raw if raw is not None else json.dumps(body or {"username": "alice"}).encode()
    return PipelineRequest(api_key=api_key, body=payload, ip_address=ip_address, user_agent=user_agent)


async def _usage_logs(session_factory):
    async with session_factory() as db:
        return list((await db.execute(select(ApiUsageLog))).scalars().all())


async def _debits(session_factory, account_id):
    async with session_factory() as db:
        return list((await db.execute(
            select(ApiTransaction).where(
                ApiTransaction.account_id == account_id,
                ApiTransaction.type == TransactionType.DEBIT.value,
            )
        )).scalars().all())


@pytest.mark.unit
@pytest.mark.asyncio
async def test_successful_verification_settles(pipeline, policies, make_account, ledger, cooldown_tracker,
                                               session_factory, count_rows):
    """Test a positive result is charged, cached and starts the cooldown"""
    account, api_key = await make_account(credits=500)

    response = await pipeline.handle(policies["exact"], _request(api_key))

    assert response.status_code == 200
    assert response.content["success"] is True
    assert response.content["fromCache"] is False
    assert response.content["creditsUsed"] == 100
    assert response.content["currentBalance"] == 400
    assert response.content["data"]["user"]["username"] == "alice"
    assert response.headers["X-Cache"] == "MISS"
    assert response.headers["X-Credits-Used"] == "100"
    assert response.headers["X-Credits-Remaining"] == "400"
    assert response.headers["X-Request-ID"] == response.content["requestId"]

    assert await ledger.get_balance(account.id) == 400
    debits = await _debits(session_factory, account.id)
    assert len(debits) == 1
    assert debits[0].description == "Exact verification for alice"
    assert await count_rows(VerificationCache, VerificationCache.account_id == account.id) == 1
    assert await cooldown_tracker.remaining(account.id, "exact_verify", 5) == 5

    logs = await _usage_logs(session_factory)
    assert len(logs) == 1
    assert logs[0].request_id == response.content["requestId"]
    assert logs[0].endpoint == "exact_verify"
    assert logs[0].credits_used == 100
    assert logs[0].was_successful is True
    assert logs[0].was_duplicate is False
    assert logs[0].ip_address == "203.0.113.7"
    assert logs[0].user_agent == "pytest"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_alice_cache_and_balance_scenario(pipeline, policies, make_account, ledger, clock, provider):
    """
    100 credits: first exact call charges everything, the repeat is served
    from cache for free, and a smart call for the same name is a miss that
    fails the balance check
    """
    account, api_key = await make_account(credits=100)

    first = await pipeline.handle(policies["exact"], _request(api_key))
    assert first.status_code == 200
    assert first.content["currentBalance"] == 0

    clock.advance(5)
    repeat = await pipeline.handle(policies["exact"], _request(api_key))
    assert repeat.status_code == 200
    assert repeat.content["fromCache"] is True
    assert repeat.content["creditsUsed"] == 0
    assert repeat.content["data"] == first.content["data"]
    assert repeat.headers["X-Cache"] == "HIT"

    smart = await pipeline.handle(policies["smart"], _request(api_key))
    assert smart.status_code == 402
    assert smart.content["error"] == "Insufficient credits"
    assert smart.content["requiredCredits"] == 100
    assert smart.content["currentBalance"] == 0

    assert await ledger.get_balance(account.id) == 0
    assert provider.calls == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_cooldown_rejects_with_retry_after(pipeline, policies, make_account, clock, provider):
    """Test a call 3 seconds into a 5 second cooldown is told to wait 2 seconds"""
    _, api_key = await make_account()

    await pipeline.handle(policies["exact"], _request(api_key))
    clock.advance(3)
    response = await pipeline.handle(policies["exact"], _request(api_key, {"username": "bob"}))

    assert response.status_code == 429
    assert response.content["error"] == "Rate limit exceeded"
    assert response.content["retryAfter"] == 2
    assert response.headers["Retry-After"] == "2"
    assert response.headers["X-RateLimit-Limit"] == "1"
    assert response.headers["X-RateLimit-Remaining"] == "0"
    assert re.fullmatch(r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z", response.headers["X-RateLimit-Reset"])
    assert provider.calls == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_cooldown_boundary(pipeline, policies, make_account, clock):
    _, api_key = await make_account()

    await pipeline.handle(policies["exact"], _request(api_key))

    clock.advance(4)
    early = await pipeline.handle(policies["exact"], _request(api_key, {"username": "bob"}))
    assert early.status_code == 429
    assert early.content["retryAfter"] == 1

    clock.advance(1)
    on_time = await pipeline.handle(policies["exact"], _request(api_key, {"username": "bob"}))
    assert on_time.status_code == 200


@pytest.mark.unit
@pytest.mark.asyncio
async def test_cooldowns_are_per_endpoint(pipeline, policies, make_account):
    _, api_key = await make_account()

    exact = await pipeline.handle(policies["exact"], _request(api_key))
    smart = await pipeline.handle(policies["smart"], _request(api_key))

    assert exact.status_code == 200
    assert smart.status_code == 200
    assert smart.content["fromCache"] is False


@pytest.mark.unit
@pytest.mark.asyncio
async def test_cache_hit_does_not_commit_cooldown(pipeline, policies, make_account, clock, cooldown_tracker):
    account, api_key = await make_account()

    await pipeline.handle(policies["exact"], _request(api_key))
    clock.advance(5)

    hit = await pipeline.handle(policies["exact"], _request(api_key))
    assert hit.content["fromCache"] is True
    assert await cooldown_tracker.remaining(account.id, "exact_verify", 5) == 0

    fresh = await pipeline.handle(policies["exact"], _request(api_key, {"username": "carol"}))
    assert fresh.status_code == 200
    assert fresh.content["fromCache"] is False


@pytest.mark.unit
@pytest.mark.asyncio
async def test_cache_is_not_shared_between_accounts(pipeline, policies, make_account, provider, ledger):
    first, first_key = await make_account(credits=100)
    second, second_key = await make_account(credits=100)

    await pipeline.handle(policies["exact"], _request(first_key))
    response = await pipeline.handle(policies["exact"], _request(second_key))

    assert response.content["fromCache"] is False
    assert provider.calls == 2
    assert await ledger.get_balance(first.id) == 0
    assert await ledger.get_balance(second.id) == 0


@pytest.mark.unit
@pytest.mark.asyncio
async def test_equivalent_bodies_share_cache_entry(pipeline, policies, make_account, clock, provider):
    """Test field order and explicit defaults do not change the cache key"""
    _, api_key = await make_account()

    await pipeline.handle(
        policies["exact"],
        _request(api_key, raw=b'{"username": "alice", "strictMatch": true, "includeProfile": true}'),
    )
    clock.advance(5)
    hit = await pipeline.handle(
        policies["exact"],
        _request(api_key, raw=b'{"includeProfile": true, "username": "alice"}'),
    )

    assert hit.content["fromCache"] is True
    assert provider.calls == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_invalid_key_format_rejected_without_lookup(pipeline, policies, session_factory):
    response = await pipeline.handle(policies["exact"], _request("sk_live_" + "0" * 64))

    assert response.status_code == 401
    assert response.content["error"] == "Authentication failed"
    assert "vl_live_" in response.content["message"]
    assert "X-Request-ID" in response.headers

    logs = await _usage_logs(session_factory)
    assert len(logs) == 1
    assert logs[0].credential_id is None
    assert logs[0].account_id is None
    assert logs[0].status_code == 401
    assert logs[0].credits_used == 0


@pytest.mark.unit
@pytest.mark.asyncio
async def test_missing_key(pipeline, policies):
    response = await pipeline.handle(policies["smart"], _request(None))

    assert response.status_code == 401
    assert response.content["message"] == "Missing API key. Include X-API-Key header."


@pytest.mark.unit
@pytest.mark.asyncio
async def test_authentication_runs_before_validation(pipeline, policies):
    response = await pipeline.handle(policies["exact"], _request(None, raw=b"not json"))

    assert response.status_code == 401


@pytest.mark.unit
@pytest.mark.asyncio
@pytest.mark.parametrize("raw, field", [
    (b"{}", "username"),
    (b'{"username": ""}', "username"),
    (b'{"username": "alice", "strictMatch": "yes"}', "strictMatch"),
    (b'{"username": 42}', "username"),
    (b"not json", None),
])
async def test_validation_errors(pipeline, policies, make_account, provider, session_factory, raw, field):
    account, api_key = await make_account()

    response = await pipeline.handle(policies["exact"], _request(api_key, raw=raw))

    assert response.status_code == 400
    assert response.content["error"] == "Validation failed"
    if field:
        assert field in response.content["details"]
    assert provider.calls == 0

    logs = await _usage_logs(session_factory)
    assert len(logs) == 1
    assert logs[0].account_id == account.id
    assert logs[0].was_successful is False


@pytest.mark.unit
@pytest.mark.asyncio
async def test_smart_filter_bounds(pipeline, policies, make_account):
    _, api_key = await make_account()

    response = await pipeline.handle(
        policies["smart"], _request(api_key, {"username": "alice", "filters": {"minAge": 25}})
    )

    assert response.status_code == 400
    assert "filters.minAge" in response.content["details"]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_insufficient_credits_skips_provider(pipeline, policies, make_account, provider, cooldown_tracker):
    account, api_key = await make_account(credits=50)

    response = await pipeline.handle(policies["exact"], _request(api_key))

    assert response.status_code == 402
    assert response.content["requiredCredits"] == 100
    assert response.content["currentBalance"] == 50
    assert provider.calls == 0
    assert await cooldown_tracker.remaining(account.id, "exact_verify", 5) == 0


@pytest.mark.unit
@pytest.mark.asyncio
async def test_negative_result_is_free(pipeline, policies, make_account, provider, ledger, cooldown_tracker,
                                       session_factory, count_rows):
    """Test a not-found answer returns 404 and charges nothing"""
    account, api_key = await make_account(credits=100)
    provider.outcome = VerificationOutcome.no_match("User not found or does not exist")

    response = await pipeline.handle(policies["exact"], _request(api_key))

    assert response.status_code == 404
    assert response.content["error"] == "User not found"
    assert response.content["message"] == "User not found or does not exist"
    assert response.content["creditsUsed"] == 0
    assert await ledger.get_balance(account.id) == 100
    assert await _debits(session_factory, account.id) == []
    assert await count_rows(VerificationCache) == 0
    assert await cooldown_tracker.remaining(account.id, "exact_verify", 5) == 0

    logs = await _usage_logs(session_factory)
    assert logs[0].status_code == 404
    assert logs[0].was_successful is False


@pytest.mark.unit
@pytest.mark.asyncio
async def test_smart_negative_result_error_string(pipeline, policies, make_account, provider):
    _, api_key = await make_account()
    provider.outcome = VerificationOutcome.no_match("User does not have verified badge")

    response = await pipeline.handle(policies["smart"], _request(api_key))

    assert response.status_code == 404
    assert response.content["error"] == "Verification failed"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_provider_timeout(pipeline, policies, make_account, provider, ledger):
    account, api_key = await make_account(credits=100)
    provider.delay = 5
    pipeline.execute_timeout = 0.05

    response = await pipeline.handle(policies["exact"], _request(api_key))

    assert response.status_code == 504
    assert response.content["error"] == "Gateway timeout"
    assert await ledger.get_balance(account.id) == 100


@pytest.mark.unit
@pytest.mark.asyncio
async def test_provider_exception_is_internal_error(pipeline, policies, make_account, provider, ledger,
                                                    session_factory):
    account, api_key = await make_account(credits=100)
    provider.error = RuntimeError("upstream exploded")

    response = await pipeline.handle(policies["exact"], _request(api_key))

    assert response.status_code == 500
    assert response.content["error"] == "Internal server error"
    assert "exploded" not in response.content["message"]
    assert response.content["requestId"] == response.headers["X-Request-ID"]
    assert await ledger.get_balance(account.id) == 100

    logs = await _usage_logs(session_factory)
    assert len(logs) == 1
    assert logs[0].status_code == 500
    assert logs[0].error_message == "Internal error: RuntimeError"


@pytest.mark.unit
@pytest.mark.asyncio
async def test_balance_drained_during_execute(pipeline, policies, make_account, provider, ledger,
                                              session_factory, count_rows, cooldown_tracker):
    """Test a debit lost to a concurrent spend discards the result uncharged"""
    account, api_key = await make_account(credits=100)

    async def drain():
        await ledger.debit(account.id, 100, "concurrent spend")

    provider.on_call = drain

    response = await pipeline.handle(policies["exact"], _request(api_key))

    assert response.status_code == 500
    assert await ledger.get_balance(account.id) == 0
    assert len(await _debits(session_factory, account.id)) == 1
    assert await count_rows(VerificationCache) == 0
    assert await cooldown_tracker.remaining(account.id, "exact_verify", 5) == 0

    logs = await _usage_logs(session_factory)
    assert logs[0].error_message == "Credit deduction failed: insufficient_funds"
    assert logs[0].credits_used == 0


@pytest.mark.unit
@pytest.mark.asyncio
async def test_one_usage_record_per_request(pipeline, policies, make_account, provider, clock, session_factory):
    _, api_key = await make_account(credits=100)

    responses = [
        await pipeline.handle(policies["exact"], _request(None)),
        await pipeline.handle(policies["exact"], _request(api_key, raw=b"{}")),
        await pipeline.handle(policies["exact"], _request(api_key)),
        await pipeline.handle(policies["exact"], _request(api_key)),
    ]
    clock.advance(5)
    responses.append(await pipeline.handle(policies["exact"], _request(api_key)))
    responses.append(await pipeline.handle(policies["smart"], _request(api_key)))

    assert [r.status_code for r in responses] == [401, 400, 200, 429, 200, 402]

    logs = await _usage_logs(session_factory)
    request_ids = [r.headers["X-Request-ID"] for r in responses]
    assert len(logs) == len(responses)
    assert sorted(log.request_id for log in logs) == sorted(request_ids)
    assert len(set(request_ids)) == len(request_ids)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_cooldown_store_outage_fails_open(pipeline, policies, make_account, cooldown_tracker):
    _, api_key = await make_account()
    broken = MagicMock()
    broken.get = AsyncMock(side_effect=ConnectionError("Redis unavailable"))
    broken.setex = AsyncMock(side_effect=ConnectionError("Redis unavailable"))
    cooldown_tracker.store = broken

    first = await pipeline.handle(policies["exact"], _request(api_key))
    second = await pipeline.handle(policies["exact"], _request(api_key, {"username": "bob"}))

    assert first.status_code == 200
    assert second.status_code == 200


@pytest.mark.unit
@pytest.mark.asyncio
async def test_oversized_client_headers_are_clipped(pipeline, policies, make_account, session_factory):
    """Test long User-Agent and forwarded addresses still produce one bounded usage row"""
    _, api_key = await make_account()

    response = await pipeline.handle(
        policies["exact"], _request(api_key, user_agent="A" * 2000, ip_address="1" * 300)
    )

    assert response.status_code == 200
    logs = await _usage_logs(session_factory)
    assert len(logs) == 1
    assert logs[0].request_id == response.headers["X-Request-ID"]
    assert logs[0].user_agent == "A" * USER_AGENT_MAX_LENGTH
    assert len(logs[0].ip_address) == 64


def _pipeline_with(pipeline, **overrides):
    parts = dict(
        credentials=pipeline.credentials,
        cooldowns=pipeline.cooldowns,
        cache=pipeline.cache,
        ledger=pipeline.ledger,
        usage_log=pipeline.usage_log,
        provider=pipeline.provider,
        execute_timeout=pipeline.execute_timeout,
        clock=pipeline.clock,
    )
    parts.update(overrides)
    return AdmissionPipeline(**parts)


@pytest.mark.unit
@pytest.mark.asyncio
async def test_usage_log_failure_does_not_fail_request(pipeline, policies, make_account, ledger):
    account, api_key = await make_account(credits=100)
    usage_log = MagicMock()
    usage_log.record = AsyncMock(side_effect=RuntimeError("audit database down"))

    response = await _pipeline_with(pipeline, usage_log=usage_log).handle(policies["exact"], _request(api_key))

    assert response.status_code == 200
    assert response.content["currentBalance"] == 0
    assert await ledger.get_balance(account.id) == 0
    usage_log.record.assert_awaited_once()


@pytest.mark.unit
@pytest.mark.asyncio
async def test_cache_store_failure_does_not_fail_request(pipeline, policies, make_account, ledger,
                                                         cooldown_tracker, session_factory):
    account, api_key = await make_account(credits=100)
    cache = MagicMock()
    cache.compute_key = pipeline.cache.compute_key
    cache.lookup = AsyncMock(return_value=None)
    cache.store = AsyncMock(side_effect=RuntimeError("cache table locked"))

    response = await _pipeline_with(pipeline, cache=cache).handle(policies["exact"], _request(api_key))

    assert response.status_code == 200
    assert response.content["creditsUsed"] == 100
    assert await ledger.get_balance(account.id) == 0
    assert await cooldown_tracker.remaining(account.id, "exact_verify", 5) == 5

    logs = await _usage_logs(session_factory)
    assert len(logs) == 1
    assert logs[0].was_successful is True
