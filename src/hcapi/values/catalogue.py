"""Catalogue of recognised keys and their value types.

The catalogue is a table of group -> key -> ``ValueSpec``. It is not
exhaustive: appliances regularly report keys, program keys and enumerated
literals that are missing here. Those are flagged by the validator and
reported, never rejected.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Iterable, Mapping

from hcapi.models import Value


class ValueKind(Enum):
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    TRUE = "true"
    ENUM = "enum"
    PROGRAM = "program"


@dataclass(frozen=True)
class ValueSpec:
    """Expected type of the value for one key.

    Attributes:
        kind: Primitive or literal kind of the value
        literals: Recognised literals (ENUM only)
        name: Enumerated type name (ENUM only)
        nullable: Whether ``None`` is a valid value
    """

    kind: ValueKind
    literals: frozenset[str] = frozenset()
    name: str | None = None
    nullable: bool = False

    def describe(self) -> str:
        text = self.name if self.kind is ValueKind.ENUM and self.name else self.kind.value
        if self.kind is ValueKind.PROGRAM:
            text = "ProgramKey"
        return f"{text} | null" if self.nullable else text


def _enum(name: str, prefix: str, *members: str) -> ValueSpec:
    return ValueSpec(
        ValueKind.ENUM,
        literals=frozenset(f"{prefix}.{member}" for member in members),
        name=name,
    )


STRING = ValueSpec(ValueKind.STRING)
NUMBER = ValueSpec(ValueKind.NUMBER)
BOOLEAN = ValueSpec(ValueKind.BOOLEAN)
TRUE = ValueSpec(ValueKind.TRUE)
PROGRAM_OR_NULL = ValueSpec(ValueKind.PROGRAM, nullable=True)

# ================================
# Program keys (not a comprehensive list)
# ================================

PROGRAM_KEYS = frozenset(
    [
        "ConsumerProducts.CleaningRobot.Program.Basic.GoHome",
        "ConsumerProducts.CleaningRobot.Program.Cleaning.CleanAll",
        "ConsumerProducts.CleaningRobot.Program.Cleaning.CleanMap",
        "ConsumerProducts.CoffeeMaker.Program.Beverage.CaffeGrande",
        "ConsumerProducts.CoffeeMaker.Program.Beverage.CaffeLatte",
        "ConsumerProducts.CoffeeMaker.Program.Beverage.Cappuccino",
        "ConsumerProducts.CoffeeMaker.Program.Beverage.Coffee",
        "ConsumerProducts.CoffeeMaker.Program.Beverage.Espresso",
        "ConsumerProducts.CoffeeMaker.Program.Beverage.EspressoDoppio",
        "ConsumerProducts.CoffeeMaker.Program.Beverage.EspressoMacchiato",
        "ConsumerProducts.CoffeeMaker.Program.Beverage.HotWater",
        "ConsumerProducts.CoffeeMaker.Program.Beverage.LatteMacchiato",
        "ConsumerProducts.CoffeeMaker.Program.Beverage.MilkFroth",
        "ConsumerProducts.CoffeeMaker.Program.Beverage.Ristretto",
        "ConsumerProducts.CoffeeMaker.Program.Beverage.WarmMilk",
        "ConsumerProducts.CoffeeMaker.Program.Beverage.XLCoffee",
        "ConsumerProducts.CoffeeMaker.Program.CleaningModes.ApplianceOffRinsing",
        "ConsumerProducts.CoffeeMaker.Program.CleaningModes.ApplianceOnRinsing",
        "ConsumerProducts.CoffeeMaker.Program.CoffeeWorld.Americano",
        "ConsumerProducts.CoffeeMaker.Program.CoffeeWorld.BlackEye",
        "ConsumerProducts.CoffeeMaker.Program.CoffeeWorld.CafeAuLait",
        "ConsumerProducts.CoffeeMaker.Program.CoffeeWorld.CafeConLeche",
        "ConsumerProducts.CoffeeMaker.Program.CoffeeWorld.CafeCortado",
        "ConsumerProducts.CoffeeMaker.Program.CoffeeWorld.Cortado",
        "ConsumerProducts.CoffeeMaker.Program.CoffeeWorld.DeadEye",
        "ConsumerProducts.CoffeeMaker.Program.CoffeeWorld.Doppio",
        "ConsumerProducts.CoffeeMaker.Program.CoffeeWorld.FlatWhite",
        "ConsumerProducts.CoffeeMaker.Program.CoffeeWorld.Galao",
        "ConsumerProducts.CoffeeMaker.Program.CoffeeWorld.Garoto",
        "ConsumerProducts.CoffeeMaker.Program.CoffeeWorld.GrosserBrauner",
        "ConsumerProducts.CoffeeMaker.Program.CoffeeWorld.Kaapi",
        "ConsumerProducts.CoffeeMaker.Program.CoffeeWorld.KleinerBrauner",
        "ConsumerProducts.CoffeeMaker.Program.CoffeeWorld.KoffieVerkeerd",
        "ConsumerProducts.CoffeeMaker.Program.CoffeeWorld.RedEye",
        "ConsumerProducts.CoffeeMaker.Program.CoffeeWorld.Verlaengerter",
        "ConsumerProducts.CoffeeMaker.Program.CoffeeWorld.VerlaengerterBraun",
        "ConsumerProducts.CoffeeMaker.Program.CoffeeWorld.WienerMelange",
        "Cooking.Common.Program.Hood.Automatic",
        "Cooking.Common.Program.Hood.DelayedShutOff",
        "Cooking.Common.Program.Hood.Venting",
        "Cooking.Oven.Program.Cleaning.Pyrolysis",
        "Cooking.Oven.Program.HeatingMode.BottomHeating",
        "Cooking.Oven.Program.HeatingMode.Defrost",
        "Cooking.Oven.Program.HeatingMode.Desiccation",
        "Cooking.Oven.Program.HeatingMode.FrozenHeatupSpecial",
        "Cooking.Oven.Program.HeatingMode.HotAir",
        "Cooking.Oven.Program.HeatingMode.HotAir100Steam",
        "Cooking.Oven.Program.HeatingMode.HotAir30Steam",
        "Cooking.Oven.Program.HeatingMode.HotAir60Steam",
        "Cooking.Oven.Program.HeatingMode.HotAir80Steam",
        "Cooking.Oven.Program.HeatingMode.HotAirEco",
        "Cooking.Oven.Program.HeatingMode.HotAirGrilling",
        "Cooking.Oven.Program.HeatingMode.IntensiveHeat",
        "Cooking.Oven.Program.HeatingMode.KeepWarm",
        "Cooking.Oven.Program.HeatingMode.PizzaSetting",
        "Cooking.Oven.Program.HeatingMode.PreHeating",
        "Cooking.Oven.Program.HeatingMode.PreheatOvenware",
        "Cooking.Oven.Program.HeatingMode.Proof",
        "Cooking.Oven.Program.HeatingMode.SabbathProgramme",
        "Cooking.Oven.Program.HeatingMode.SlowCook",
        "Cooking.Oven.Program.HeatingMode.TopBottomHeating",
        "Cooking.Oven.Program.HeatingMode.TopBottomHeatingEco",
        "Cooking.Oven.Program.HeatingMode.WarmingDrawer",
        "Dishcare.Dishwasher.Program.Auto1",
        "Dishcare.Dishwasher.Program.Auto2",
        "Dishcare.Dishwasher.Program.Auto3",
        "Dishcare.Dishwasher.Program.AutoHalfLoad",
        "Dishcare.Dishwasher.Program.Eco50",
        "Dishcare.Dishwasher.Program.ExpressSparkle65",
        "Dishcare.Dishwasher.Program.Glas40",
        "Dishcare.Dishwasher.Program.GlassCare",
        "Dishcare.Dishwasher.Program.Intensiv45",
        "Dishcare.Dishwasher.Program.Intensiv70",
        "Dishcare.Dishwasher.Program.IntensivPower",
        "Dishcare.Dishwasher.Program.Kurz60",
        "Dishcare.Dishwasher.Program.MachineCare",
        "Dishcare.Dishwasher.Program.MagicDaily",
        "Dishcare.Dishwasher.Program.MaximumCleaning",
        "Dishcare.Dishwasher.Program.MixedLoad",
        "Dishcare.Dishwasher.Program.NightWash",
        "Dishcare.Dishwasher.Program.Normal45",
        "Dishcare.Dishwasher.Program.Normal65",
        "Dishcare.Dishwasher.Program.PreRinse",
        "Dishcare.Dishwasher.Program.Quick45",
        "Dishcare.Dishwasher.Program.Quick65",
        "Dishcare.Dishwasher.Program.SteamFresh",
        "Dishcare.Dishwasher.Program.Super60",
        "LaundryCare.Dryer.Program.AntiShrink",
        "LaundryCare.Dryer.Program.Blankets",
        "LaundryCare.Dryer.Program.BusinessShirts",
        "LaundryCare.Dryer.Program.Cotton",
        "LaundryCare.Dryer.Program.Delicates",
        "LaundryCare.Dryer.Program.Dessous",
        "LaundryCare.Dryer.Program.DownFeathers",
        "LaundryCare.Dryer.Program.Hygiene",
        "LaundryCare.Dryer.Program.InBasket",
        "LaundryCare.Dryer.Program.Jeans",
        "LaundryCare.Dryer.Program.Mix",
        "LaundryCare.Dryer.Program.MyTime.MyDryingTime",
        "LaundryCare.Dryer.Program.Outdoor",
        "LaundryCare.Dryer.Program.Pillow",
        "LaundryCare.Dryer.Program.Shirts15",
        "LaundryCare.Dryer.Program.Super40",
        "LaundryCare.Dryer.Program.Synthetic",
        "LaundryCare.Dryer.Program.SyntheticRefresh",
        "LaundryCare.Dryer.Program.TimeCold",
        "LaundryCare.Dryer.Program.TimeColdFix.TimeCold20",
        "LaundryCare.Dryer.Program.TimeColdFix.TimeCold30",
        "LaundryCare.Dryer.Program.TimeColdFix.TimeCold60",
        "LaundryCare.Dryer.Program.TimeWarm",
        "LaundryCare.Dryer.Program.TimeWarmFix.TimeWarm30",
        "LaundryCare.Dryer.Program.TimeWarmFix.TimeWarm40",
        "LaundryCare.Dryer.Program.TimeWarmFix.TimeWarm60",
        "LaundryCare.Dryer.Program.Towels",
        "LaundryCare.Washer.Program.Auto30",
        "LaundryCare.Washer.Program.Auto40",
        "LaundryCare.Washer.Program.Auto60",
        "LaundryCare.Washer.Program.Chiffon",
        "LaundryCare.Washer.Program.Cotton",
        "LaundryCare.Washer.Program.Cotton.Colour",
        "LaundryCare.Washer.Program.Cotton.CottonEco",
        "LaundryCare.Washer.Program.Cotton.Eco4060",
        "LaundryCare.Washer.Program.Curtains",
        "LaundryCare.Washer.Program.DarkWash",
        "LaundryCare.Washer.Program.DelicatesSilk",
        "LaundryCare.Washer.Program.Dessous",
        "LaundryCare.Washer.Program.DownDuvet.Duvet",
        "LaundryCare.Washer.Program.DrumClean",
        "LaundryCare.Washer.Program.EasyCare",
        "LaundryCare.Washer.Program.Mix",
        "LaundryCare.Washer.Program.Mix.NightWash",
        "LaundryCare.Washer.Program.Monsoon",
        "LaundryCare.Washer.Program.Outdoor",
        "LaundryCare.Washer.Program.PlushToy",
        "LaundryCare.Washer.Program.PowerSpeed59",
        "LaundryCare.Washer.Program.Rinse.RinseSpinDrain",
        "LaundryCare.Washer.Program.Sensitive",
        "LaundryCare.Washer.Program.ShirtsBlouses",
        "LaundryCare.Washer.Program.SportFitness",
        "LaundryCare.Washer.Program.Super153045.Super15",
        "LaundryCare.Washer.Program.Super153045.Super1530",
        "LaundryCare.Washer.Program.Towels",
        "LaundryCare.Washer.Program.WaterProof",
        "LaundryCare.Washer.Program.Wool",
        "LaundryCare.WasherDryer.Program.Cotton",
        "LaundryCare.WasherDryer.Program.Cotton.Eco4060",
        "LaundryCare.WasherDryer.Program.EasyCare",
        "LaundryCare.WasherDryer.Program.Mix",
        "LaundryCare.WasherDryer.Program.WashAndDry.60",
        "LaundryCare.WasherDryer.Program.WashAndDry.90",
    ]
)

# ================================
# Enumerated types
# ================================

_COFFEE = "ConsumerProducts.CoffeeMaker.EnumType"
_ROBOT = "ConsumerProducts.CleaningRobot.EnumType"
_COMMON = "BSH.Common.EnumType"

# Program options
BeanAmount = _enum(
    "BeanAmount",
    f"{_COFFEE}.BeanAmount",
    "VeryMild", "Mild", "MildPlus", "Normal", "NormalPlus", "Strong", "StrongPlus",
    "VeryStrong", "VeryStrongPlus", "ExtraStrong", "DoubleShot", "DoubleShotPlus",
    "DoubleShotPlusPlus", "TripleShot", "TripleShotPlus", "CoffeeGround",
)
BeanContainerSelection = _enum(
    "BeanContainerSelection", f"{_COFFEE}.BeanContainerSelection", "Right", "Left"
)
CleaningMode = _enum("CleaningMode", f"{_ROBOT}.CleaningModes", "Silent", "Standard", "Power")
CoffeeMilkRatio = _enum(
    "CoffeeMilkRatio",
    f"{_COFFEE}.CoffeeMilkRatio",
    *(f"{percent}Percent" for percent in (10, 20, 25, 30, 40, 50, 55, 60, 65, 67, 70, 75, 80, 85, 90)),
)
CoffeeTemperature = _enum(
    "CoffeeTemperature",
    f"{_COFFEE}.CoffeeTemperature",
    "88C", "90C", "92C", "94C", "95C", "96C",
)
DryingTarget = _enum(
    "DryingTarget",
    "LaundryCare.Dryer.EnumType.DryingTarget",
    "IronDry", "GentleDry", "CupboardDry", "CupboardDryPlus", "ExtraDry",
)
DryingTargetAdjustment = _enum(
    "DryingTargetAdjustment",
    "LaundryCare.Dryer.EnumType.DryingTargetAdjustment",
    "Off", "Plus1", "Plus2", "Plus3",
)
FanSetting = _enum(
    "FanSetting",
    "Cooking.Hood.EnumType.Stage",
    "FanOff", "FanStage01", "FanStage02", "FanStage03", "FanStage04", "FanStage05",
)
FlowRate = _enum("FlowRate", f"{_COFFEE}.FlowRate", "Normal", "Intense", "IntensePlus")
HotWaterTemperature = _enum(
    "HotWaterTemperature",
    f"{_COFFEE}.HotWaterTemperature",
    "WhiteTea", "GreenTea", "BlackTea",
    "50C", "55C", "60C", "65C", "70C", "75C", "80C", "85C", "90C", "95C", "97C",
    "122F", "131F", "140F", "149F", "158F", "167F", "176F", "185F", "194F", "203F",
    "Max",
)
IntensiveSetting = _enum(
    "IntensiveSetting",
    "Cooking.Hood.EnumType.IntensiveStage",
    "IntensiveStageOff", "IntensiveStage1", "IntensiveStage2",
)
PyrolysisLevel = _enum(
    "PyrolysisLevel", "Cooking.Oven.EnumType.PyrolysisLevel", "Level01", "Level02", "Level03"
)
ReferenceMapID = _enum(
    "ReferenceMapID",
    f"{_ROBOT}.AvailableMaps",
    "TempMap", "Map1", "Map2", "Map3", "Map4", "Map5",
)
RinsePlus = _enum("RinsePlus", "LaundryCare.Washer.EnumType.RinsePlus", "Off", "On")
SpinSpeed = _enum(
    "SpinSpeed",
    "LaundryCare.Washer.EnumType.SpinSpeed",
    "Off", "RPM400", "RPM600", "RPM800", "RPM1000", "RPM1200", "RPM1400", "RPM1600",
    "UlOff", "UlLow", "UlMedium", "UlHigh",
)
Stains = _enum("Stains", "LaundryCare.Washer.EnumType.Stains", "Off", "On")
VarioPerfect = _enum(
    "VarioPerfect",
    "LaundryCare.Common.EnumType.VarioPerfect",
    "Off", "EcoPerfect", "SpeedPerfect",
)
WarmingLevel = _enum("WarmingLevel", "Cooking.Oven.EnumType.WarmingLevel", "Low", "Medium", "High")
WasherTemperature = _enum(
    "WasherTemperature",
    "LaundryCare.Washer.EnumType.Temperature",
    "Auto", "Cold", "GC20", "GC30", "GC40", "GC50", "GC60", "GC70", "GC80", "GC90",
    "UlCold", "UlWarm", "UlHot", "UlExtraHot",
)
WrinkleGuard = _enum(
    "WrinkleGuard", "LaundryCare.Dryer.EnumType.WrinkleGuard", "Off", "Min60", "Min120"
)

# States
BatteryChargingState = _enum(
    "BatteryChargingState", f"{_COMMON}.BatteryChargingState", "Discharging", "Charging"
)
ChargingConnection = _enum(
    "ChargingConnection", f"{_COMMON}.ChargingConnection", "Disconnected", "Connected"
)
DoorState = _enum("DoorState", f"{_COMMON}.DoorState", "Open", "Closed", "Locked")
DoorStateRefrigeration = _enum(
    "DoorStateRefrigeration", "Refrigeration.Common.EnumType.Door.States", "Open", "Closed"
)
OperationState = _enum(
    "OperationState",
    f"{_COMMON}.OperationState",
    "Inactive", "Ready", "DelayedStart", "Run", "Pause", "ActionRequired", "Finished",
    "Error", "Aborting",
)
CameraState = _enum(
    "CameraState",
    f"{_COMMON}.Video.CameraState",
    "Disabled", "Sleeping", "Ready", "StreamingLocal", "StreamingCloud",
    "StreamingLocalAndCloud", "Error",
)

# Settings
AmbientLightColor = _enum(
    "AmbientLightColor",
    f"{_COMMON}.AmbientLightColor",
    "CustomColor",
    *(f"Color{index}" for index in range(1, 100)),
)
AssistantForce = _enum(
    "AssistantForce",
    "Refrigeration.Common.EnumType.Door.AssistantForce",
    "LowForce", "MiddleForce", "HighForce",
)
AssistantTrigger = _enum(
    "AssistantTrigger",
    "Refrigeration.Common.EnumType.Door.AssistantTrigger",
    "Push", "Pull", "PushPull",
)
LiquidVolumeUnit = _enum(
    "LiquidVolumeUnit", f"{_COMMON}.LiquidVolumeUnit", "FluidOunces", "MilliLiter"
)
PowerState = _enum("PowerState", f"{_COMMON}.PowerState", "MainsOff", "Off", "On", "Standby")
TemperatureUnit = _enum("TemperatureUnit", f"{_COMMON}.TemperatureUnit", "Celsius", "Fahrenheit")

# Events
EventPresentState = _enum(
    "EventPresentState", f"{_COMMON}.EventPresentState", "Present", "Off", "Confirmed"
)
ProcessPhase = _enum(
    "ProcessPhase",
    f"{_ROBOT}.ProcessPhase",
    "MovingToTarget", "Cleaning", "SearchingBaseStation", "MovingToHome", "ChargingBreak",
    "MapValidationByUser", "Exploring", "Localizing",
)

# ================================
# Keys
# ================================

OPTIONS: Mapping[str, ValueSpec] = {
    "BSH.Common.Option.Duration": NUMBER,
    "BSH.Common.Option.ElapsedProgramTime": NUMBER,
    "BSH.Common.Option.EnergyForecast": NUMBER,
    "BSH.Common.Option.EstimatedTotalProgramTime": NUMBER,
    "BSH.Common.Option.FinishInRelative": NUMBER,
    "BSH.Common.Option.ProgramProgress": NUMBER,
    "BSH.Common.Option.RemainingProgramTime": NUMBER,
    "BSH.Common.Option.RemainingProgramTimeIsEstimated": BOOLEAN,
    "BSH.Common.Option.StartInRelative": NUMBER,
    "BSH.Common.Option.WaterForecast": NUMBER,
    "ConsumerProducts.CleaningRobot.Option.CleaningMode": CleaningMode,
    "ConsumerProducts.CleaningRobot.Option.ProcessPhase": ProcessPhase,
    "ConsumerProducts.CleaningRobot.Option.ReferenceMapId": ReferenceMapID,
    "ConsumerProducts.CoffeeMaker.Option.BeanAmount": BeanAmount,
    "ConsumerProducts.CoffeeMaker.Option.BeanContainerSelection": BeanContainerSelection,
    "ConsumerProducts.CoffeeMaker.Option.CoffeeMilkRatio": CoffeeMilkRatio,
    "ConsumerProducts.CoffeeMaker.Option.CoffeeTemperature": CoffeeTemperature,
    "ConsumerProducts.CoffeeMaker.Option.FillQuantity": NUMBER,
    "ConsumerProducts.CoffeeMaker.Option.FlowRate": FlowRate,
    "ConsumerProducts.CoffeeMaker.Option.HotWaterTemperature": HotWaterTemperature,
    "ConsumerProducts.CoffeeMaker.Option.MultipleBeverages": BOOLEAN,
    "Cooking.Common.Option.Hood.IntensiveLevel": IntensiveSetting,
    "Cooking.Common.Option.Hood.VentingLevel": FanSetting,
    "Cooking.Oven.Option.FastPreHeat": BOOLEAN,
    "Cooking.Oven.Option.PyrolysisLevel": PyrolysisLevel,
    "Cooking.Oven.Option.SetpointTemperature": NUMBER,
    "Cooking.Oven.Option.WarmingLevel": WarmingLevel,
    "Dishcare.Dishwasher.Option.BrillianceDry": BOOLEAN,
    "Dishcare.Dishwasher.Option.EcoDry": BOOLEAN,
    "Dishcare.Dishwasher.Option.ExtraDry": BOOLEAN,
    "Dishcare.Dishwasher.Option.HalfLoad": BOOLEAN,
    "Dishcare.Dishwasher.Option.HygienePlus": BOOLEAN,
    "Dishcare.Dishwasher.Option.IntensivZone": BOOLEAN,
    "Dishcare.Dishwasher.Option.SilenceOnDemand": BOOLEAN,
    "Dishcare.Dishwasher.Option.VarioSpeed": BOOLEAN,
    "Dishcare.Dishwasher.Option.VarioSpeedPlus": BOOLEAN,
    "Dishcare.Dishwasher.Option.ZeoliteDry": BOOLEAN,
    "LaundryCare.Common.Option.LoadRecommendation": NUMBER,
    "LaundryCare.Common.Option.ReferToProgram": NUMBER,
    "LaundryCare.Common.Option.VarioPerfect": VarioPerfect,
    "LaundryCare.Dryer.Option.DryingTarget": DryingTarget,
    "LaundryCare.Dryer.Option.DryingTargetAdjustment": DryingTargetAdjustment,
    "LaundryCare.Dryer.Option.Gentle": BOOLEAN,
    "LaundryCare.Dryer.Option.WrinkleGuard": WrinkleGuard,
    "LaundryCare.Washer.Option.IDos1Active": BOOLEAN,
    "LaundryCare.Washer.Option.IDos2Active": BOOLEAN,
    "LaundryCare.Washer.Option.LessIroning": BOOLEAN,
    "LaundryCare.Washer.Option.Prewash": BOOLEAN,
    "LaundryCare.Washer.Option.RinseHold": BOOLEAN,
    "LaundryCare.Washer.Option.RinsePlus": RinsePlus,
    "LaundryCare.Washer.Option.SilentWash": BOOLEAN,
    "LaundryCare.Washer.Option.Soak": BOOLEAN,
    "LaundryCare.Washer.Option.SpinSpeed": SpinSpeed,
    "LaundryCare.Washer.Option.Stains": Stains,
    "LaundryCare.Washer.Option.Temperature": WasherTemperature,
    "LaundryCare.Washer.Option.WaterPlus": BOOLEAN,
}

_FRIDGE_DOOR = "Refrigeration.Common.Status.Door"

STATUSES: Mapping[str, ValueSpec] = {
    "BSH.Common.Status.BatteryChargingState": BatteryChargingState,
    "BSH.Common.Status.BatteryLevel": NUMBER,
    "BSH.Common.Status.ChargingConnection": ChargingConnection,
    "BSH.Common.Status.DoorState": DoorState,
    "BSH.Common.Status.LocalControlActive": BOOLEAN,
    "BSH.Common.Status.OperationState": OperationState,
    "BSH.Common.Status.RemoteControlActive": BOOLEAN,
    "BSH.Common.Status.RemoteControlStartAllowed": BOOLEAN,
    "BSH.Common.Status.Video.CameraState": CameraState,
    "ConsumerProducts.CleaningRobot.Status.DustBoxInserted": BOOLEAN,
    "ConsumerProducts.CleaningRobot.Status.LastSelectedMap": ReferenceMapID,
    "ConsumerProducts.CleaningRobot.Status.Lifted": BOOLEAN,
    "ConsumerProducts.CleaningRobot.Status.Lost": BOOLEAN,
    "ConsumerProducts.CoffeeMaker.Status.BeverageCounterCoffee": NUMBER,
    "ConsumerProducts.CoffeeMaker.Status.BeverageCounterCoffeeAndMilk": NUMBER,
    "ConsumerProducts.CoffeeMaker.Status.BeverageCounterFrothyMilk": NUMBER,
    "ConsumerProducts.CoffeeMaker.Status.BeverageCounterHotMilk": NUMBER,
    "ConsumerProducts.CoffeeMaker.Status.BeverageCounterHotWater": NUMBER,
    "ConsumerProducts.CoffeeMaker.Status.BeverageCounterHotWaterCups": NUMBER,
    "ConsumerProducts.CoffeeMaker.Status.BeverageCounterMilk": NUMBER,
    "ConsumerProducts.CoffeeMaker.Status.BeverageCounterPowderCoffee": NUMBER,
    "ConsumerProducts.CoffeeMaker.Status.BeverageCounterRistrettoEspresso": NUMBER,
    "Cooking.Oven.Status.CurrentCavityTemperature": NUMBER,
    **{
        f"{_FRIDGE_DOOR}.{door}": DoorStateRefrigeration
        for door in (
            "BottleCooler", "Chiller", "ChillerCommon", "ChillerLeft", "ChillerRight",
            "FlexCompartment", "Freezer", "Refrigerator", "Refrigerator2", "Refrigerator3",
            "WineCompartment",
        )
    },
}

SETTINGS: Mapping[str, ValueSpec] = {
    "BSH.Common.Setting.AlarmClock": NUMBER,
    "BSH.Common.Setting.AmbientLightBrightness": NUMBER,
    "BSH.Common.Setting.AmbientLightColor": AmbientLightColor,
    "BSH.Common.Setting.AmbientLightCustomColor": STRING,
    "BSH.Common.Setting.AmbientLightEnabled": BOOLEAN,
    "BSH.Common.Setting.ChildLock": BOOLEAN,
    "BSH.Common.Setting.LiquidVolumeUnit": LiquidVolumeUnit,
    "BSH.Common.Setting.PowerState": PowerState,
    "BSH.Common.Setting.TemperatureUnit": TemperatureUnit,
    "ConsumerProducts.CleaningRobot.Setting.CurrentMap": ReferenceMapID,
    **{f"ConsumerProducts.CleaningRobot.Setting.NameOfMap{index}": STRING for index in range(1, 6)},
    "ConsumerProducts.CoffeeMaker.Setting.CupWarmer": BOOLEAN,
    "Cooking.Common.Setting.Lighting": BOOLEAN,
    "Cooking.Common.Setting.LightingBrightness": NUMBER,
    "Cooking.Hood.Setting.ColorTemperaturePercent": NUMBER,
    "Cooking.Oven.Setting.SabbathMode": BOOLEAN,
    "LaundryCare.Washer.Setting.IDos1BaseLevel": NUMBER,
    "LaundryCare.Washer.Setting.IDos2BaseLevel": NUMBER,
    "Refrigeration.Common.Setting.BottleCooler.SetpointTemperature": NUMBER,
    "Refrigeration.Common.Setting.ChillerCommon.SetpointTemperature": NUMBER,
    "Refrigeration.Common.Setting.ChillerLeft.SetpointTemperature": NUMBER,
    "Refrigeration.Common.Setting.ChillerRight.SetpointTemperature": NUMBER,
    "Refrigeration.Common.Setting.Dispenser.Enabled": BOOLEAN,
    "Refrigeration.Common.Setting.Door.AssistantForceFreezer": AssistantForce,
    "Refrigeration.Common.Setting.Door.AssistantForceFridge": AssistantForce,
    "Refrigeration.Common.Setting.Door.AssistantFreezer": BOOLEAN,
    "Refrigeration.Common.Setting.Door.AssistantFridge": BOOLEAN,
    "Refrigeration.Common.Setting.Door.AssistantTimeoutFreezer": NUMBER,
    "Refrigeration.Common.Setting.Door.AssistantTimeoutFridge": NUMBER,
    "Refrigeration.Common.Setting.Door.AssistantTriggerFreezer": AssistantTrigger,
    "Refrigeration.Common.Setting.Door.AssistantTriggerFridge": AssistantTrigger,
    "Refrigeration.Common.Setting.EcoMode": BOOLEAN,
    "Refrigeration.Common.Setting.FreshMode": BOOLEAN,
    "Refrigeration.Common.Setting.Light.External.Brightness": NUMBER,
    "Refrigeration.Common.Setting.Light.External.Power": BOOLEAN,
    "Refrigeration.Common.Setting.Light.Internal.Brightness": NUMBER,
    "Refrigeration.Common.Setting.Light.Internal.Power": BOOLEAN,
    "Refrigeration.Common.Setting.SabbathMode": BOOLEAN,
    "Refrigeration.Common.Setting.VacationMode": BOOLEAN,
    "Refrigeration.Common.Setting.WineCompartment.SetpointTemperature": NUMBER,
    "Refrigeration.Common.Setting.WineCompartment2.SetpointTemperature": NUMBER,
    "Refrigeration.Common.Setting.WineCompartment3.SetpointTemperature": NUMBER,
    "Refrigeration.FridgeFreezer.Setting.SetpointTemperatureFreezer": NUMBER,
    "Refrigeration.FridgeFreezer.Setting.SetpointTemperatureRefrigerator": NUMBER,
    "Refrigeration.FridgeFreezer.Setting.SuperModeFreezer": BOOLEAN,
    "Refrigeration.FridgeFreezer.Setting.SuperModeRefrigerator": BOOLEAN,
}

COMMANDS: Mapping[str, ValueSpec] = {
    "BSH.Common.Command.AcknowledgeEvent": TRUE,
    "BSH.Common.Command.OpenDoor": TRUE,
    "BSH.Common.Command.PartlyOpenDoor": TRUE,
    "BSH.Common.Command.PauseProgram": TRUE,
    "BSH.Common.Command.ResumeProgram": TRUE,
}

PRESENT_STATE_EVENTS: Mapping[str, ValueSpec] = {
    f"{prefix}.Event.{name}": EventPresentState
    for prefix, names in (
        ("BSH.Common", ("AlarmClockElapsed", "ProgramAborted", "ProgramFinished")),
        ("Cooking.Oven", ("PreheatFinished", "RegularPreheatFinished")),
        (
            "ConsumerProducts.CleaningRobot",
            ("DockingStationNotFound", "EmptyDustBoxAndCleanFilter", "RobotIsStuck"),
        ),
        (
            "ConsumerProducts.CoffeeMaker",
            (
                "BeanContainerEmpty",
                "CalcNCleanIn10Cups", "CalcNCleanIn15Cups", "CalcNCleanIn20Cups",
                "CalcNCleanIn5Cups",
                "DescalingIn10Cups", "DescalingIn15Cups", "DescalingIn20Cups",
                "DescalingIn5Cups",
                "DeviceCalcNCleanBlockage", "DeviceCalcNCleanOverdue", "DeviceCleaningOverdue",
                "DeviceDescalingBlockage", "DeviceDescalingOverdue",
                "DeviceShouldBeCalcNCleaned", "DeviceShouldBeCleaned", "DeviceShouldBeDescaled",
                "DripTrayFull", "KeepMilkTankCool", "WaterTankEmpty",
            ),
        ),
        (
            "Cooking.Common",
            (
                "Hood.GreaseFilterMaxSaturationNearlyReached",
                "Hood.GreaseFilterMaxSaturationReached",
            ),
        ),
        ("Dishcare.Dishwasher", ("RinseAidNearlyEmpty", "SaltNearlyEmpty")),
        ("LaundryCare.Washer", ("IDos1FillLevelPoor", "IDos2FillLevelPoor")),
        (
            "Refrigeration.FridgeFreezer",
            ("DoorAlarmFreezer", "DoorAlarmRefrigerator", "TemperatureAlarmFreezer"),
        ),
    )
    for name in names
}

# Event type -> catalogue group holding the keys it may carry
EVENT_GROUPS = {
    "CONNECTED": "EventConnected",
    "DISCONNECTED": "EventDisconnected",
    "PAIRED": "EventPaired",
    "DEPAIRED": "EventDepaired",
    "NOTIFY": "EventNotify",
    "STATUS": "EventStatus",
    "EVENT": "EventEvent",
}

DEFAULT_GROUPS: Mapping[str, Mapping[str, ValueSpec]] = MappingProxyType(
    {
        "Option": MappingProxyType(dict(OPTIONS)),
        "Status": MappingProxyType(dict(STATUSES)),
        "Setting": MappingProxyType(dict(SETTINGS)),
        "Command": MappingProxyType(dict(COMMANDS)),
        "EventConnected": MappingProxyType({"BSH.Common.Appliance.Connected": TRUE}),
        "EventDisconnected": MappingProxyType({"BSH.Common.Appliance.Disconnected": TRUE}),
        "EventPaired": MappingProxyType({"BSH.Common.Appliance.Paired": TRUE}),
        "EventDepaired": MappingProxyType({"BSH.Common.Appliance.Depaired": TRUE}),
        "EventNotify": MappingProxyType(
            {
                **OPTIONS,
                **SETTINGS,
                "BSH.Common.Root.SelectedProgram": PROGRAM_OR_NULL,
                "BSH.Common.Root.ActiveProgram": PROGRAM_OR_NULL,
            }
        ),
        "EventStatus": MappingProxyType(dict(STATUSES)),
        "EventEvent": MappingProxyType(dict(PRESENT_STATE_EVENTS)),
    }
)


class Catalogue:
    """Lookup of recognised keys, program keys and value types.

    A fresh instance wraps the built-in tables; tests (or callers tracking a
    newer API) may supply their own.
    """

    def __init__(
        self,
        groups: Mapping[str, Mapping[str, ValueSpec]] | None = None,
        programs: Iterable[str] | None = None,
    ) -> None:
        self._groups = DEFAULT_GROUPS if groups is None else groups
        self._programs = PROGRAM_KEYS if programs is None else frozenset(programs)

    @property
    def groups(self) -> list[str]:
        return list(self._groups)

    def lookup(self, group: str, key: str) -> ValueSpec | None:
        """Return the value type for a key, or None if the key is not recognised.

        Raises:
            KeyError: If the group does not exist
        """
        return self._groups[group].get(key)

    def is_program(self, key: str) -> bool:
        return key in self._programs

    def accepts(self, spec: ValueSpec, value: Value) -> bool:
        """Test whether a value has the type (and literal) expected by ``spec``."""
        if value is None:
            return spec.nullable
        kind = spec.kind
        if kind is ValueKind.STRING:
            return isinstance(value, str)
        if kind is ValueKind.NUMBER:
            return isinstance(value, (int, float)) and not isinstance(value, bool)
        if kind is ValueKind.BOOLEAN:
            return isinstance(value, bool)
        if kind is ValueKind.TRUE:
            return value is True
        if kind is ValueKind.ENUM:
            return isinstance(value, str) and value in spec.literals
        return isinstance(value, str) and self.is_program(value)
