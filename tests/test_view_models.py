"""Tests for timebox.core.view_models — page state adapters."""

import asyncio

import pytest

from timebox.core.errors import NotAuthenticated, WriteFailure
from timebox.core.view_models import SheetListViewModel, SheetViewModel
from timebox.data.models import BlockColor
from timebox.ports.document_store_port import sheet_path

USER = "u1"


class TestSheetListViewModel:
    @pytest.mark.asyncio
    async def test_no_user_is_idle(self, repo, store):
        vm = SheetListViewModel(repo, None)
        await vm.start()

        assert vm.data == []
        assert vm.is_loading is False
        assert store.calls == []

    @pytest.mark.asyncio
    async def test_start_follows_live_list(self, repo, store, settle):
        vm = SheetListViewModel(repo, USER)
        changes: list = []
        vm.on_change(lambda: changes.append(len(vm.data)))

        await vm.start()
        await vm.create("2024-03-01")
        await settle()

        assert [s.id for s in vm.data] == ["sheet-2024-03-01"]
        assert vm.is_loading is False
        assert vm.error is None
        assert changes[-1] == 1
        await vm.stop()

    @pytest.mark.asyncio
    async def test_optimistic_delete(self, repo, store, settle):
        vm = SheetListViewModel(repo, USER)
        await vm.start()
        await vm.create("2024-03-01")
        await settle()

        task = asyncio.ensure_future(vm.delete("sheet-2024-03-01"))
        await asyncio.sleep(0)
        assert vm.data == []
        await task
        await vm.stop()

    @pytest.mark.asyncio
    async def test_delete_failure_restores_list(self, repo, store, settle):
        vm = SheetListViewModel(repo, USER)
        await vm.start()
        await vm.create("2024-03-01")
        await settle()
        store.fail_next("delete_document")

        with pytest.raises(WriteFailure):
            await vm.delete("sheet-2024-03-01")

        assert [s.id for s in vm.data] == ["sheet-2024-03-01"]
        assert vm.error == "Failed to delete timebox"
        await vm.stop()

    @pytest.mark.asyncio
    async def test_create_failure_sets_error(self, repo, store):
        vm = SheetListViewModel(repo, USER)
        store.fail_next("set_document")

        with pytest.raises(WriteFailure):
            await vm.create("2024-03-01")
        assert vm.error == "Failed to create timebox"

    @pytest.mark.asyncio
    async def test_actions_need_user(self, repo):
        vm = SheetListViewModel(repo, "")
        with pytest.raises(NotAuthenticated):
            await vm.create("2024-03-01")
        assert await vm.check_date_exists("2024-03-01") is False

    @pytest.mark.asyncio
    async def test_check_date_exists(self, repo):
        vm = SheetListViewModel(repo, USER)
        await vm.create("2024-03-01")
        assert await vm.check_date_exists("2024-03-01") is True
        assert await vm.check_date_exists("2024-03-02") is False


class TestSheetViewModel:
    @pytest.mark.asyncio
    async def test_unbound_stays_empty(self, repo):
        vm = SheetViewModel(repo, USER, None)
        await vm.load()

        assert vm.data is None
        assert vm.is_loading is False
        assert vm.mutate({"title": "X"}) is None

    @pytest.mark.asyncio
    async def test_load(self, repo):
        await repo.create(USER, "2024-03-01")
        vm = SheetViewModel(repo, USER, "sheet-2024-03-01")

        await vm.load()

        assert vm.data.title == "Friday, March 1"
        assert vm.is_loading is False

    @pytest.mark.asyncio
    async def test_load_failure(self, repo, store):
        store.fail_next("get_document")
        vm = SheetViewModel(repo, USER, "sheet-2024-03-01")

        await vm.load()

        assert vm.data is None
        assert vm.error == "Failed to load timebox"

    @pytest.mark.asyncio
    async def test_rapid_mutations_one_write(self, repo, store):
        await repo.create(USER, "2024-03-01")
        vm = SheetViewModel(repo, USER, "sheet-2024-03-01")
        await vm.load()

        futures = [vm.rename(title) for title in ("P", "Pl", "Plan")]
        assert vm.data.title == "Plan"
        await asyncio.gather(*futures)

        assert len(store.calls_to("update_document")) == 1
        stored = await store.get_document(sheet_path(USER, "sheet-2024-03-01"))
        assert stored["title"] == "Plan"

    @pytest.mark.asyncio
    async def test_failed_mutation_sets_error(self, repo, store):
        await repo.create(USER, "2024-03-01")
        vm = SheetViewModel(repo, USER, "sheet-2024-03-01")
        await vm.load()
        store.fail_next("update_document")

        with pytest.raises(WriteFailure):
            await vm.rename("X")
        assert vm.error == "Failed to update timebox"

    @pytest.mark.asyncio
    async def test_panel_actions(self, repo, store):
        await repo.create(USER, "2024-03-01")
        vm = SheetViewModel(repo, USER, "sheet-2024-03-01")
        await vm.load()

        vm.add_priority("  Write report ")
        vm.toggle_priority(vm.data.priorities[0].id)
        vm.add_note("call mum")
        vm.add_time_block("13:30", "14:00", "Lunch", BlockColor.SUCCESS)
        vm.add_time_block("08:00", "09:00", "Gym")
        await repo.flush()

        assert vm.data.priorities[0].text == "Write report"
        assert vm.data.priorities[0].completed is True
        assert [b.start_time for b in vm.schedule] == ["08:00", "13:30"]
        stored = await store.get_document(sheet_path(USER, "sheet-2024-03-01"))
        assert stored["notes"][0]["content"] == "call mum"
        assert stored["schedule"][0]["color"] == "success"
        assert len(store.calls_to("update_document")) == 1
