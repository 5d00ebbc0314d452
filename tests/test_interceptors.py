"""
Tests for InterceptorChain

Coverage includes:
- Sequential execution in registration order, async callbacks awaited
- Success/error routing followed by the response chain
- Contract violations
- Removal by identity, snapshot semantics during a fold
"""

import asyncio

import pytest

from fetch_orchestrator.exceptions import InterceptorContractError
from fetch_orchestrator.interceptors import InterceptorChain
from fetch_orchestrator.request import RequestDescriptor

from conftest import fail, ok


@pytest.fixture
def request_descriptor() -> RequestDescriptor:
    return RequestDescriptor(endpoint="/users")


class TestOrdering:
    """Tests for sequential execution."""

    @pytest.mark.asyncio
    async def test_async_callbacks_run_strictly_in_order(self, request_descriptor):
        chain = InterceptorChain()
        log = []

        def delayed(name, delay):
            async def callback(response, request):
                log.append(f"{name}:start")
                await asyncio.sleep(delay)
                log.append(f"{name}:end")
                return response, request

            return callback

        chain.on_success(delayed("A", 0.02)).on_success(delayed("B", 0)).on_success(delayed("C", 0.01))

        await chain.modify_success_response(ok(1), request_descriptor)

        assert log == ["A:start", "A:end", "B:start", "B:end", "C:start", "C:end"]

    @pytest.mark.asyncio
    async def test_each_callback_sees_previous_output(self, request_descriptor):
        chain = InterceptorChain()

        async def add_one(response, request):
            response.data += 1
            return response, request

        def double(response, request):
            response.data *= 2
            return response, request

        chain.on_success(add_one).on_success(double)

        response, request = await chain.modify_success_response(ok(1), request_descriptor)

        assert response.data == 4
        assert request is request_descriptor

    @pytest.mark.asyncio
    async def test_empty_chain_returns_input(self, request_descriptor):
        response = ok(1)
        result = await InterceptorChain().modify_response(response, request_descriptor)
        assert result == (response, request_descriptor)


class TestProcess:
    """Tests for process routing."""

    @pytest.mark.asyncio
    async def test_success_then_response_chain(self, request_descriptor):
        chain = InterceptorChain()
        log = []
        chain.on_success(lambda r, q: (log.append("success"), (r, q))[1])
        chain.on_error(lambda r, q: (log.append("error"), (r, q))[1])
        chain.on_response(lambda r, q: (log.append("response"), (r, q))[1])

        await chain.process(ok(1), request_descriptor)

        assert log == ["success", "response"]

    @pytest.mark.asyncio
    async def test_error_then_response_chain(self, request_descriptor):
        chain = InterceptorChain()
        log = []
        chain.on_success(lambda r, q: (log.append("success"), (r, q))[1])
        chain.on_error(lambda r, q: (log.append("error"), (r, q))[1])
        chain.on_response(lambda r, q: (log.append("response"), (r, q))[1])

        await chain.process(fail("x"), request_descriptor)

        assert log == ["error", "response"]


class TestContract:
    """Tests for contract violations."""

    @pytest.mark.asyncio
    async def test_none_result_raises(self, request_descriptor):
        chain = InterceptorChain()
        chain.on_success(lambda r, q: (r, q))
        chain.on_success(lambda r, q: None)

        with pytest.raises(InterceptorContractError) as info:
            await chain.modify_success_response(ok(1), request_descriptor)

        assert info.value.chain == "success"
        assert info.value.index == 1

    @pytest.mark.asyncio
    async def test_partial_pair_raises(self, request_descriptor):
        chain = InterceptorChain()

        async def broken(response, request):
            return response, None

        chain.on_error(broken)

        with pytest.raises(InterceptorContractError) as info:
            await chain.modify_error_response(fail("x"), request_descriptor)

        assert info.value.chain == "error"


class TestRemoval:
    """Tests for callback removal."""

    @pytest.mark.asyncio
    async def test_remove_by_identity(self, request_descriptor):
        chain = InterceptorChain()
        calls = []

        def first(response, request):
            calls.append("first")
            return response, request

        def second(response, request):
            calls.append("second")
            return response, request

        chain.on_response(first).on_response(second).on_response(first)
        chain.remove_on_response([first])

        await chain.modify_response(ok(1), request_descriptor)

        assert calls == ["second"]
        assert chain.response_callbacks == [second]

    def test_remove_unknown_is_noop(self):
        chain = InterceptorChain()
        chain.on_success(lambda r, q: (r, q))
        chain.remove_on_success([lambda r, q: (r, q)])
        chain.remove_on_error([])
        assert len(chain.success_callbacks) == 1
        assert chain.error_callbacks == []

    @pytest.mark.asyncio
    async def test_removal_during_fold_applies_to_next_fold(self, request_descriptor):
        chain = InterceptorChain()
        calls = []

        def later(response, request):
            calls.append("later")
            return response, request

        def remover(response, request):
            calls.append("remover")
            chain.remove_on_success([later])
            return response, request

        chain.on_success(remover).on_success(later)

        await chain.modify_success_response(ok(1), request_descriptor)
        await chain.modify_success_response(ok(1), request_descriptor)

        assert calls == ["remover", "later", "remover"]

    def test_callback_lists_are_copies(self):
        chain = InterceptorChain()
        chain.success_callbacks.append(print)
        assert chain.success_callbacks == []
