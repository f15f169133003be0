from database import CubeMXDatabase, GpioMode, PartInfo, PinInfo, SignalInfo, SignalMap
from validator import DatabaseValidator, ValidationLevel


def make_part(*pins, mode=GpioMode.AF):
    return PartInfo(part="STM32TEST", line="STM32G0", package="LQFP32", gpio_mode=mode, pins=pins)


def test_database_part_is_valid(af_db):
    part = CubeMXDatabase(af_db).load_part("STM32F407VGTx")
    result = DatabaseValidator().validate(part)

    assert result.is_valid
    assert not result.has_errors()
    assert not result.has_warnings()
    assert str(result.info_messages[0]) == "STM32F407VGTx: 3 pins, 5 pin signals"


def test_duplicate_pin():
    result = DatabaseValidator().validate(make_part(PinInfo("PA0", "7"), PinInfo("PA0", "8")))

    assert not result.is_valid
    assert "Pin PA0 listed more than once" in str(result.errors[0])


def test_two_signals_on_one_af_slot_warns():
    pin = PinInfo("PA2", "8", (
        SignalInfo("USART2_TX", SignalMap.alternate(7)),
        SignalInfo("LPUART1_TX", SignalMap.alternate(7)),
    ))
    result = DatabaseValidator().validate(make_part(pin))

    assert result.is_valid
    assert not result.has_errors()
    assert str(result.warnings[0]) == "PA2: AF7 shared by USART2_TX and LPUART1_TX"


def test_af_out_of_range():
    pin = PinInfo("PB0", "14", (SignalInfo("EVENTOUT", SignalMap.alternate(16)),))
    result = DatabaseValidator().validate(make_part(pin))

    assert result.errors[0].level is ValidationLevel.ERROR
    assert "AF16 of EVENTOUT out of range" in result.errors[0].message


def test_remap_mapping_on_af_part_warns():
    pin = PinInfo("PB6", "42", (SignalInfo("USART1_TX", SignalMap.remap([1])),))
    result = DatabaseValidator().validate(make_part(pin))

    assert result.is_valid
    assert result.has_warnings()
    assert result.warnings[0].location == "PB6"
