"""Tests for CommandEngine"""

import asyncio

import pytest

from gpioserver.config import parse_config
from gpioserver.engine import COMMANDS, NO_ERROR, parse_set_value
from gpioserver.exceptions import CommandError, ConfigError
from gpioserver.types import Logic, PinConfig, Mode

from conftest import SAMPLE_CONFIG, make_bench


def pin_views(response):
    return {view["ID"]: view for view in response["State"]["GPIOInfo"]}


class TestSetValueParsing:
    """Test cases for parse_set_value"""

    @pytest.mark.parametrize("logic", [Logic.NORMAL, Logic.INVERT])
    def test_absolute_values_ignore_logic(self, logic):
        pin = PinConfig(id=1, mode=Mode.OUTPUT, logic=logic)
        assert parse_set_value(pin, "HIGH") == 1
        assert parse_set_value(pin, "1") == 1
        assert parse_set_value(pin, "low") == 0
        assert parse_set_value(pin, "0") == 0

    def test_relative_values_follow_logic(self):
        normal = PinConfig(id=1, mode=Mode.OUTPUT, logic=Logic.NORMAL)
        invert = PinConfig(id=2, mode=Mode.OUTPUT, logic=Logic.INVERT)

        assert parse_set_value(normal, "On") == 1
        assert parse_set_value(normal, "off") == 0
        assert parse_set_value(invert, "ON") == 0
        assert parse_set_value(invert, "Off") == 1

    @pytest.mark.parametrize("value", [None, "", "maybe", "2", "onn"])
    def test_unrecognized_values(self, value):
        pin = PinConfig(id=1, mode=Mode.OUTPUT)
        with pytest.raises(CommandError, match="Unrecognized set value"):
            parse_set_value(pin, value)


class TestOutputCommands:
    """SetGPIO, ToggleGPIO and ReadGPIO"""

    @pytest.mark.parametrize("pin_id", ["4", "17"])
    @pytest.mark.parametrize("label", ["On", "Off"])
    async def test_set_then_read_reports_label(self, bench, pin_id, label):
        """On/Off read back the same regardless of Logic"""
        response = await bench.run("SetGPIO", pin_id, label)
        assert response["Error"] == NO_ERROR
        assert pin_views(response)[int(pin_id)]["Value"] == label

        response = await bench.run("ReadGPIO", pin_id)
        assert response["Error"] == NO_ERROR
        assert response["State"] == label

    @pytest.mark.parametrize("pin_id", [4, 17])
    async def test_high_and_low_are_electrical(self, bench, pin_id):
        """High/Low drive the physical level for both logics"""
        await bench.run("SetGPIO", str(pin_id), "High")
        assert bench.provider.lines[pin_id].level == 1

        await bench.run("SetGPIO", str(pin_id), "low")
        assert bench.provider.lines[pin_id].level == 0

    async def test_high_on_inverted_pin_reads_off(self, bench):
        response = await bench.run("SetGPIO", "17", "High")
        assert pin_views(response)[17]["Value"] == "Off"

    async def test_toggle_twice_restores_label(self, bench):
        before = (await bench.run("ReadGPIO", "17"))["State"]

        first = await bench.run("ToggleGPIO", "17")
        assert first["Error"] == NO_ERROR
        assert pin_views(first)[17]["Value"] != before

        second = await bench.run("ToggleGPIO", "17")
        assert pin_views(second)[17]["Value"] == before

    async def test_concurrent_toggles_do_not_interleave(self, bench):
        """Each toggle reads and writes without another toggle in between"""
        line = bench.provider.lines[4]
        plain_read = line.read

        async def slow_read():
            level = await plain_read()
            await asyncio.sleep(0)
            return level

        line.read = slow_read
        start = line.level
        writes_before = len(bench.provider.writes(4))

        first, second = await asyncio.gather(
            bench.run("ToggleGPIO", "4"),
            bench.run("ToggleGPIO", "4"),
        )

        assert first["Error"] == second["Error"] == NO_ERROR
        assert line.level == start
        assert bench.provider.writes(4)[writes_before:] == [1 - start, start]

    async def test_set_on_input_fails_without_write(self, bench):
        """Input pins refuse SetGPIO and are never written"""
        response = await bench.run("SetGPIO", "7", "On")

        assert "not an output device" in response["Error"]
        assert bench.provider.writes(7) == []
        assert [view["ID"] for view in response["State"]["GPIOInfo"]] == [4, 7, 17]

    async def test_toggle_on_input_fails(self, bench):
        response = await bench.run("ToggleGPIO", "7")
        assert "not an output device" in response["Error"]
        assert bench.provider.writes(7) == []

    async def test_unrecognized_value_does_not_write(self, bench):
        writes_before = list(bench.provider.writes(4))
        response = await bench.run("SetGPIO", "4", "sideways")

        assert response["Error"].startswith("Unrecognized set value")
        assert bench.provider.writes(4) == writes_before

    @pytest.mark.parametrize("arg", ["9", "abc", None])
    async def test_unknown_pin(self, bench, arg):
        response = await bench.run("ReadGPIO", arg)
        assert response["Error"].startswith("No such GPIO")

    async def test_read_input_applies_logic(self, bench):
        """Pull-up input idles high; Invert shows that as Off"""
        response = await bench.run("ReadGPIO", "7")
        assert response["State"] == "Off"

        bench.provider.lines[7].level = 0
        response = await bench.run("ReadGPIO", "7")
        assert response["State"] == "On"

    async def test_hardware_error_is_reported(self, bench):
        bench.provider.lines[4].fail_writes = True
        response = await bench.run("SetGPIO", "4", "On")

        assert response["Error"] != NO_ERROR
        assert "write error" in response["Error"]

    async def test_numeric_arguments_are_accepted(self, bench):
        response = await bench.engine.execute({"Type": "SetGPIO", "Arg1": 4, "Arg2": 1})
        assert response["Error"] == NO_ERROR
        assert bench.provider.lines[4].level == 1


class TestCycle:
    """CycleGPIO"""

    async def test_default_delay(self, bench):
        response = await bench.run("CycleGPIO", "4")

        assert response["Error"] == NO_ERROR
        assert bench.sleeps == [6.0]
        assert bench.provider.writes(4)[-2:] == [0, 1]
        assert pin_views(response)[4]["Value"] == "On"

    async def test_explicit_delay(self, bench):
        await bench.run("CycleGPIO", "17", "100")

        assert bench.sleeps == [0.1]
        # Invert: Off is level 1, On is level 0
        assert bench.provider.writes(17)[-2:] == [1, 0]

    async def test_off_phase_failure_skips_on_phase(self, bench):
        response = await bench.run("CycleGPIO", "7")

        assert "not an output device" in response["Error"]
        assert bench.sleeps == []
        assert bench.provider.writes(7) == []

    async def test_off_phase_hardware_failure(self, bench):
        bench.provider.lines[4].fail_writes = True
        response = await bench.run("CycleGPIO", "4")

        assert "write error" in response["Error"]
        assert bench.sleeps == []

    @pytest.mark.parametrize("delay", ["-5", "soon"])
    async def test_invalid_delay(self, bench, delay):
        response = await bench.run("CycleGPIO", "4", delay)
        assert response["Error"].startswith("Invalid cycle time")

    async def test_wait_does_not_block_other_commands(self, tmp_path):
        """Other requests complete while a cycle is waiting"""
        bench = await make_bench(tmp_path)
        release = asyncio.Event()
        waiting = asyncio.Event()

        async def held_sleep(seconds):
            waiting.set()
            await release.wait()

        bench.engine._sleep = held_sleep
        cycle = asyncio.create_task(bench.run("CycleGPIO", "4"))
        await asyncio.wait_for(waiting.wait(), 1)

        response = await asyncio.wait_for(bench.run("SetGPIO", "17", "On"), 1)
        assert response["Error"] == NO_ERROR
        assert not cycle.done()

        release.set()
        response = await asyncio.wait_for(cycle, 1)
        assert response["Error"] == NO_ERROR
        assert pin_views(response)[4]["Value"] == "On"


class TestRename:
    """SetUName, SetUDesc and SetGPIOInfo"""

    async def test_set_uname_persists_and_reloads(self, bench):
        response = await bench.run("SetUName", "4", "Toaster")

        assert response["Error"] == NO_ERROR
        assert pin_views(response)[4]["UName"] == "Toaster"
        assert parse_config(bench.path.read_text()).pins[4].uname == "Toaster"

        response = await bench.run("GetGPIOInfo")
        assert pin_views(response)[4]["UName"] == "Toaster"

    async def test_set_udesc(self, bench):
        response = await bench.run("SetUDesc", "7", "Back door")

        assert response["Error"] == NO_ERROR
        assert pin_views(response)[7]["UDesc"] == "Back door"
        assert pin_views(response)[7]["HName"] == "Door"

    async def test_rename_round_trip_through_file(self, bench, tmp_path):
        """A fresh server reading the saved file sees the new name"""
        await bench.run("SetUName", "17", "Heater")

        other = tmp_path / "other"
        other.mkdir()
        reloaded = await make_bench(other, bench.path.read_text())
        response = await reloaded.run("GetGPIOInfo")
        assert pin_views(response)[17]["UName"] == "Heater"

    async def test_rename_disallowed(self, tmp_path):
        bench = await make_bench(tmp_path, SAMPLE_CONFIG.replace("AllowRename Yes", "AllowRename No"))
        original = bench.path.read_text()

        for command in ("SetUName", "SetUDesc"):
            response = await bench.run(command, "4", "Nope")
            assert response["Error"] == "Renaming disallowed"

        response = await bench.run("SetGPIOInfo", state={"GPIOInfo": [{"ID": 4, "UName": "Nope"}]})
        assert response["Error"] == "Renaming disallowed"

        assert bench.path.read_text() == original
        assert bench.registry.get(4).uname == "Kettle"

    async def test_rename_unknown_pin(self, bench):
        response = await bench.run("SetUName", "30", "Ghost")
        assert response["Error"] == "No such GPIO: 30"

    async def test_rename_rejects_quotes(self, bench):
        response = await bench.run("SetUName", "4", 'Say "hi"')
        assert "double quotes" in response["Error"]
        assert bench.registry.get(4).uname == "Kettle"

    @pytest.mark.parametrize("name", ["Kettle\u2028left", "Kettle\x0bleft", "Kettle\x85left", "Tab\there"])
    async def test_rename_rejects_unprintable_names(self, bench, name):
        original = bench.path.read_text()
        response = await bench.run("SetUName", "4", name)

        assert "non-printable" in response["Error"]
        assert bench.path.read_text() == original
        assert bench.registry.get(4).uname == "Kettle"

    async def test_unloadable_render_is_never_written(self, bench):
        """A rendered file that fails to parse leaves the saved file alone"""
        original = bench.path.read_text()

        with pytest.raises(ConfigError):
            await bench.engine._persist({4: {"uname": "Kettle\u2028left"}})

        assert bench.path.read_text() == original
        assert parse_config(bench.path.read_text()).pins[4].uname == "Kettle"
        assert bench.registry.get(4).uname == "Kettle"

    async def test_persistence_failure_leaves_memory_alone(self, bench, tmp_path):
        from gpioserver.config import ConfigFile

        bench.engine.config_file = ConfigFile(tmp_path / "gone" / "gpio.conf")
        response = await bench.run("SetUName", "4", "Toaster")

        assert response["Error"].startswith("Cannot save configuration")
        assert bench.registry.get(4).uname == "Kettle"
        assert pin_views(response)[4]["UName"] == "Kettle"

    async def test_set_gpio_info_bulk(self, bench):
        state = {
            "GPIOInfo": [
                {"ID": 4, "UName": "A", "UDesc": "first"},
                {"ID": "17", "UDesc": "second"},
                {"ID": 30, "UName": "ignored"},
            ]
        }
        response = await bench.run("SetGPIOInfo", state=state)

        assert response["Error"] == NO_ERROR
        views = pin_views(response)
        assert (views[4]["UName"], views[4]["UDesc"]) == ("A", "first")
        assert (views[17]["UName"], views[17]["UDesc"]) == ("Lamp", "second")
        assert 30 not in views

        saved = parse_config(bench.path.read_text())
        assert saved.pins[4].uname == "A"
        assert saved.pins[17].udesc == "second"

    async def test_set_gpio_info_malformed(self, bench):
        response = await bench.run("SetGPIOInfo", state={"Pins": []})
        assert response["Error"].startswith("Malformed GPIO info")


class TestGeneralRequests:
    """ListCommands, GetGPIOInfo and request validation"""

    async def test_list_commands(self, bench):
        response = await bench.run("ListCommands")
        assert response["Error"] == NO_ERROR
        assert response["State"] == COMMANDS

    async def test_get_gpio_info_sorted(self, bench):
        response = await bench.run("GetGPIOInfo")
        state = response["State"]

        assert state["SysName"] == "testhost"
        assert state["AllowRename"] == "Yes"
        assert [view["ID"] for view in state["GPIOInfo"]] == [4, 7, 17]
        assert set(state["GPIOInfo"][0]) == {"ID", "HName", "UName", "UDesc", "Mode", "Value"}
        assert pin_views(response)[7]["Mode"] == "Input"

    async def test_unknown_type_still_returns_snapshot(self, bench):
        response = await bench.run("Explode", "4")

        assert response["Type"] == "Explode"
        assert response["Error"] == "Unknown request type: Explode"
        assert [view["ID"] for view in response["State"]["GPIOInfo"]] == [4, 7, 17]

    async def test_request_echoes_arguments(self, bench):
        response = await bench.run("ReadGPIO", "4")
        assert response["Type"] == "ReadGPIO"
        assert response["Arg1"] == "4"

    @pytest.mark.parametrize("message", [{}, {"Type": 5}, "GetGPIOInfo", {"Type": "SetGPIO", "Arg1": [4]}])
    async def test_malformed_requests(self, bench, message):
        response = await bench.engine.execute(message)
        assert response["Error"].startswith("Malformed request")
        assert "GPIOInfo" in response["State"]
