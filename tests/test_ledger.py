import asyncio

import pytest

from docgate.errors import AccountNotFound, InsufficientCreditsError, ValidationError


async def test_debit_and_credit(services, make_account):
    user_id = await make_account(balance=5)

    assert await services.ledger.debit(user_id, 2) == 3
    assert await services.ledger.credit(user_id, 4) == 7
    assert await services.ledger.get_balance(user_id) == 7


async def test_debit_exact_balance_reaches_zero(services, make_account):
    user_id = await make_account(balance=2)
    assert await services.ledger.debit(user_id, 2) == 0

    with pytest.raises(InsufficientCreditsError) as exc_info:
        await services.ledger.debit(user_id, 1)
    assert exc_info.value.available == 0
    assert await services.ledger.get_balance(user_id) == 0


async def test_insufficient_debit_leaves_balance(services, make_account):
    user_id = await make_account(balance=1)

    with pytest.raises(InsufficientCreditsError) as exc_info:
        await services.ledger.debit(user_id, 2)

    assert exc_info.value.required == 2
    assert exc_info.value.available == 1
    assert "Insufficient credits" in exc_info.value.message
    assert await services.ledger.get_balance(user_id) == 1


async def test_missing_account(services):
    with pytest.raises(AccountNotFound):
        await services.ledger.get_balance("ghost@example.com")
    with pytest.raises(AccountNotFound):
        await services.ledger.debit("ghost@example.com", 1)
    with pytest.raises(AccountNotFound):
        await services.ledger.credit("ghost@example.com", 1)


async def test_non_positive_amounts_rejected(services, make_account):
    user_id = await make_account(balance=3)
    with pytest.raises(ValidationError):
        await services.ledger.debit(user_id, 0)
    with pytest.raises(ValidationError):
        await services.ledger.credit(user_id, -1)
    assert await services.ledger.get_balance(user_id) == 3


@pytest.mark.parametrize("balance,amount", [(10, 3), (7, 2), (5, 1)])
async def test_concurrent_debits_never_overdraw(services, make_account, balance, amount):
    user_id = await make_account(balance=balance)

    async def attempt():
        try:
            await services.ledger.debit(user_id, amount)
            return True
        except InsufficientCreditsError:
            return False

    results = await asyncio.gather(*(attempt() for _ in range(balance + 4)))

    assert sum(results) == balance // amount
    assert await services.ledger.get_balance(user_id) == balance % amount


async def test_mixed_sequence_stays_non_negative(services, make_account):
    user_id = await make_account(balance=3)
    for amount in (2, 2, 1, 5, 1, 1):
        try:
            await services.ledger.debit(user_id, amount)
        except InsufficientCreditsError:
            await services.ledger.credit(user_id, 1)
        assert await services.ledger.get_balance(user_id) >= 0
