"""Default indicator-index to English method name table (EF 3.1 impact categories)."""

from __future__ import annotations

from typing import Final, Mapping

METHOD_EN_BY_INDEX: Final[Mapping[int, str]] = {
    0: "Acidification",
    1: "Climate change",
    2: "Climate change-Biogenic",
    3: "Climate change-Fossil",
    4: "Climate change-Land use and land use change",
    5: "Ecotoxicity, freshwater",
    6: "Ecotoxicity, freshwater - inorganics",
    7: "Ecotoxicity, freshwater - organics",
    8: "Particulate matter",
    9: "Eutrophication, marine",
    10: "Eutrophication, freshwater",
    11: "Eutrophication, terrestrial",
    12: "Human toxicity, cancer",
    13: "Human toxicity, cancer - inorganics",
    14: "Human toxicity, cancer - organics",
    15: "Human toxicity, non-cancer",
    16: "Human toxicity, non-cancer - inorganics",
    17: "Human toxicity, non-cancer - organics",
    18: "Ionising radiation, human health",
    19: "Land use",
    20: "Ozone depletion",
    21: "Photochemical ozone formation - human health",
    22: "Resource use, fossils",
    23: "Resource use, minerals and metals",
    24: "Water use",
}
