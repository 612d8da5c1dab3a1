"""Application state package."""

from household_finance.state.container import (
    Action,
    AddEntity,
    Batch,
    Collection,
    FinanceState,
    LoadData,
    RemoveEntity,
    ReplaceEntities,
    SetLoading,
    SetSelectedMonth,
    StateContainer,
    UpdateEntity,
    UpdateSettings,
    reduce,
)

__all__ = [
    "Action",
    "AddEntity",
    "Batch",
    "Collection",
    "FinanceState",
    "LoadData",
    "RemoveEntity",
    "ReplaceEntities",
    "SetLoading",
    "SetSelectedMonth",
    "StateContainer",
    "UpdateEntity",
    "UpdateSettings",
    "reduce",
]
