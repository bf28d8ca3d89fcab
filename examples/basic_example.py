import asyncio
import logging
from pathlib import Path

from gpioserver import GpioService, SimulatedProvider

# Enable logging to see what's happening
logging.basicConfig(level=logging.INFO)

CONFIG = Path(__file__).parent / "gpio.conf"


async def main():
    """Drive the example configuration on simulated lines"""
    print("Testing gpioserver")

    provider = SimulatedProvider()
    service = GpioService(provider, CONFIG, sys_name="example", cycle_ms=500)
    await service.start()

    # Watch pushed snapshots the way a second client would
    subscription = service.broadcaster.subscribe()

    try:
        response = await service.handle({"Type": "GetGPIOInfo"})
        for pin in response["State"]["GPIOInfo"]:
            print(f"GPIO {pin['ID']:>2} {pin['Mode']:<6} {pin['UName']:<14} {pin.get('Value')}")

        print("\n--- Outputs ---")
        response = await service.handle({"Type": "SetGPIO", "Arg1": "0", "Arg2": "On"})
        print(f"SetGPIO 0 On: {response['Error']}")

        response = await service.handle({"Type": "ToggleGPIO", "Arg1": "1"})
        print(f"ToggleGPIO 1: {response['Error']}")

        response = await service.handle({"Type": "CycleGPIO", "Arg1": "0", "Arg2": "250"})
        print(f"CycleGPIO 0: {response['Error']}")

        response = await service.handle({"Type": "SetGPIO", "Arg1": "8", "Arg2": "On"})
        print(f"SetGPIO 8 (input): {response['Error']}")

        print("\n--- Inputs ---")
        provider.simulate_input_change(8, 0)
        await asyncio.sleep(0.1)

        response = await service.handle({"Type": "ReadGPIO", "Arg1": "8"})
        print(f"ReadGPIO 8: {response['State']}")

        print(f"\nPushed snapshots: {subscription.queue.qsize()}")
    finally:
        subscription.close()
        await service.stop()

    print("Example completed")


if __name__ == "__main__":
    asyncio.run(main())
