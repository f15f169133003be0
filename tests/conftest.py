import gzip
import os
import sys
from pathlib import Path

import pytest

# Add the project root to the Python path
project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
sys.path.insert(0, project_root)

NS = 'xmlns="http://mcd.rou.st.com/modules.php?name=mcu"'

AF_PART = f"""<?xml version="1.0" encoding="UTF-8"?>
<Mcu {NS} Family="STM32F4" Line="STM32F407/417" Package="LQFP100" RefName="STM32F407VGTx">
  <IP InstanceName="RCC" Name="RCC" Version="STM32F407_rcc_v1_0"/>
  <IP InstanceName="GPIO" Name="GPIO" Version="STM32F417_gpio_v1_0"/>
  <Pin Name="PA9" Position="68" Type="I/O">
    <Signal Name="TIM1_CH2"/>
    <Signal Name="USART1_TX"/>
    <Signal Name="OTG_FS_VBUS"/>
    <Signal Name="GPIO"/>
  </Pin>
  <Pin Name="PA10" Position="69" Type="I/O">
    <Signal Name="TIM1_CH3"/>
    <Signal Name="USART1_RX"/>
    <Signal Name="GPIO"/>
  </Pin>
  <Pin Name="VDD" Position="11" Type="Power"/>
</Mcu>
"""

AF_GPIO = f"""<?xml version="1.0" encoding="UTF-8"?>
<IP {NS} IPType="peripheral" Name="GPIO" Version="STM32F417_gpio_v1_0">
  <GPIO_Pin PortName="PA" Name="PA9">
    <PinSignal Name="TIM1_CH2">
      <SpecificParameter Name="GPIO_AF">
        <PossibleValue>GPIO_AF1_TIM1</PossibleValue>
      </SpecificParameter>
    </PinSignal>
    <PinSignal Name="USART1_TX">
      <SpecificParameter Name="GPIO_AF">
        <PossibleValue>GPIO_AF7_USART1</PossibleValue>
      </SpecificParameter>
    </PinSignal>
  </GPIO_Pin>
  <GPIO_Pin PortName="PA" Name="PA10">
    <PinSignal Name="TIM1_CH3">
      <SpecificParameter Name="GPIO_AF">
        <PossibleValue>GPIO_AF1_TIM1</PossibleValue>
      </SpecificParameter>
    </PinSignal>
    <PinSignal Name="USART1_RX">
      <SpecificParameter Name="GPIO_AF">
        <PossibleValue>GPIO_AF7_USART1</PossibleValue>
      </SpecificParameter>
    </PinSignal>
  </GPIO_Pin>
</IP>
"""

REMAP_PART = f"""<?xml version="1.0" encoding="UTF-8"?>
<Mcu {NS} Family="STM32F1" Line="STM32F103" Package="LQFP48" RefName="STM32F103C(8-B)Tx">
  <IP InstanceName="GPIO" Name="GPIO" Version="STM32F103x8_gpio_v1_0"/>
  <Pin Name="PA0-WKUP" Position="10" Type="I/O">
    <Signal Name="ADC1_IN0"/>
    <Signal Name="ADC2_IN0"/>
  </Pin>
  <Pin Name="PA9" Position="30" Type="I/O">
    <Signal Name="TIM1_CH2"/>
    <Signal Name="USART1_TX"/>
    <Signal Name="GPIO"/>
  </Pin>
  <Pin Name="PB6" Position="42" Type="I/O">
    <Signal Name="I2C1_SCL"/>
    <Signal Name="TIM4_CH1"/>
    <Signal Name="USART1_TX"/>
  </Pin>
</Mcu>
"""

REMAP_GPIO = f"""<?xml version="1.0" encoding="UTF-8"?>
<IP {NS} IPType="peripheral" Name="GPIO" Version="STM32F103x8_gpio_v1_0">
  <GPIO_Pin PortName="PA" Name="PA9">
    <PinSignal Name="USART1_TX">
      <RemapBlock Name="USART1_REMAP0" DefaultRemap="true"/>
    </PinSignal>
  </GPIO_Pin>
  <GPIO_Pin PortName="PB" Name="PB6">
    <PinSignal Name="I2C1_SCL">
      <RemapBlock Name="I2C1_REMAP0" DefaultRemap="true"/>
    </PinSignal>
    <PinSignal Name="TIM4_CH1">
      <RemapBlock Name="TIM4_REMAP1"/>
      <RemapBlock Name="TIM4_REMAP0" DefaultRemap="true"/>
    </PinSignal>
    <PinSignal Name="USART1_TX">
      <RemapBlock Name="USART1_REMAP1">
        <SpecificParameter Name="GPIO_AF">
          <PossibleValue>__HAL_AFIO_REMAP_USART1_ENABLE</PossibleValue>
        </SpecificParameter>
      </RemapBlock>
    </PinSignal>
  </GPIO_Pin>
</IP>
"""


def write_gz(path: Path, text: str):
    path.parent.mkdir(parents=True, exist_ok=True)
    with gzip.open(path, 'wb') as f:
        f.write(text.encode('utf-8'))


def make_database(root: Path, parts: dict, gpios: dict) -> Path:
    """Create a database directory: parts and gpios map names to XML text"""
    for part, text in parts.items():
        write_gz(root / "mcu" / f"{part}.xml.gz", text)
    for version, text in gpios.items():
        write_gz(root / "mcu" / "IP" / f"GPIO-{version}_Modes.xml.gz", text)
    return root


@pytest.fixture
def af_db(tmp_path):
    return make_database(
        tmp_path / "db",
        {"STM32F407VGTx": AF_PART},
        {"STM32F417_gpio_v1_0": AF_GPIO}
    )


@pytest.fixture
def remap_db(tmp_path):
    return make_database(
        tmp_path / "db",
        {"STM32F103C(8-B)Tx": REMAP_PART},
        {"STM32F103x8_gpio_v1_0": REMAP_GPIO}
    )


@pytest.fixture
def full_db(tmp_path):
    return make_database(
        tmp_path / "db",
        {"STM32F407VGTx": AF_PART, "STM32F103C(8-B)Tx": REMAP_PART},
        {"STM32F417_gpio_v1_0": AF_GPIO, "STM32F103x8_gpio_v1_0": REMAP_GPIO}
    )
