from __future__ import annotations

import logging
from functools import lru_cache
from typing import Dict, List, Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict, Field

from grid_core import FileParseError, GridBuildError, GridEditor, GridStore, WaveConfig
from grid_core.consolidate import validate_drivers
from grid_core.entry import DriverRecord, TimeRecord
from grid_core.grid import number_grid
from grid_core.parser import ParsedFile
from grid_core.waves import (
    GridOrder,
    SortBy,
    StartType,
    TieBreaker,
    assigned_classes,
    available_sort_options,
    available_tie_breakers,
    car_count_in_wave,
    car_counts_by_class,
    describe_wave,
)

app = FastAPI(title="Starting Grid Builder API", version="1.0.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

logger = logging.getLogger(__name__)


class FileUploadPayload(BaseModel):
    file_name: str = Field(alias="fileName", min_length=1)
    content: str

    model_config = ConfigDict(populate_by_name=True)


class FileSummaryModel(BaseModel):
    file_name: str = Field(alias="fileName")
    kind: str
    entries: int
    fields: List[str]
    warnings: List[str]

    model_config = ConfigDict(populate_by_name=True)


class FileListResponse(BaseModel):
    files: List[FileSummaryModel]


class TimeModel(BaseModel):
    time: str
    seconds: float
    source: str


class ContributionModel(BaseModel):
    source: str
    class_name: Optional[str] = Field(default=None, alias="className")
    best_time: Optional[str] = Field(default=None, alias="bestTime")
    second_best: Optional[str] = Field(default=None, alias="secondBest")
    speed: Optional[str] = None
    second_speed: Optional[str] = Field(default=None, alias="secondSpeed")
    points: Optional[float] = None
    position: Optional[int] = None
    position_in_class: Optional[int] = Field(default=None, alias="positionInClass")

    model_config = ConfigDict(populate_by_name=True)


class DriverModel(BaseModel):
    key: str
    name: str
    number: str
    class_name: str = Field(alias="className")
    files: List[ContributionModel]
    file_count: int = Field(alias="fileCount")
    best_overall_time: Optional[TimeModel] = Field(default=None, alias="bestOverallTime")
    second_best_overall_time: Optional[TimeModel] = Field(default=None, alias="secondBestOverallTime")
    total_points: float = Field(alias="totalPoints")
    average_points: float = Field(alias="averagePoints")
    best_position: Optional[int] = Field(default=None, alias="bestPosition")
    average_position: Optional[float] = Field(default=None, alias="averagePosition")
    best_position_in_class: Optional[int] = Field(default=None, alias="bestPositionInClass")
    average_position_in_class: Optional[float] = Field(default=None, alias="averagePositionInClass")

    model_config = ConfigDict(populate_by_name=True)


class DriverListResponse(BaseModel):
    drivers: List[DriverModel]
    issues: List[str]


class ClassSummaryModel(BaseModel):
    name: str
    cars: int
    wave_number: Optional[int] = Field(default=None, alias="waveNumber")

    model_config = ConfigDict(populate_by_name=True)


class ClassListResponse(BaseModel):
    classes: List[ClassSummaryModel]


class WaveConfigModel(BaseModel):
    wave_number: int = Field(alias="waveNumber")
    start_type: StartType = Field(alias="startType")
    classes: List[str]
    sort_by: SortBy = Field(alias="sortBy")
    tie_breakers: List[TieBreaker] = Field(alias="tieBreakers")
    grid_order: GridOrder = Field(alias="gridOrder")
    inverted: bool
    invert_all: bool = Field(alias="invertAll")
    invert_count: int = Field(alias="invertCount")
    empty_positions: int = Field(alias="emptyPositions")
    car_count: int = Field(alias="carCount")
    description: str

    model_config = ConfigDict(populate_by_name=True)


class WaveListResponse(BaseModel):
    waves: List[WaveConfigModel]
    sort_options: List[SortBy] = Field(alias="sortOptions")
    tie_breaker_options: List[TieBreaker] = Field(alias="tieBreakerOptions")

    model_config = ConfigDict(populate_by_name=True)


class WaveCountPayload(BaseModel):
    wave_count: int = Field(alias="waveCount", ge=1)
    default_wave_spacing: Optional[int] = Field(default=None, alias="defaultWaveSpacing", ge=0)

    model_config = ConfigDict(populate_by_name=True)


class WaveUpdatePayload(BaseModel):
    start_type: Optional[StartType] = Field(default=None, alias="startType")
    classes: Optional[List[str]] = None
    sort_by: Optional[SortBy] = Field(default=None, alias="sortBy")
    tie_breakers: Optional[List[TieBreaker]] = Field(default=None, alias="tieBreakers")
    grid_order: Optional[GridOrder] = Field(default=None, alias="gridOrder")
    inverted: Optional[bool] = None
    invert_all: Optional[bool] = Field(default=None, alias="invertAll")
    invert_count: Optional[int] = Field(default=None, alias="invertCount", ge=0)
    empty_positions: Optional[int] = Field(default=None, alias="emptyPositions", ge=0)

    model_config = ConfigDict(populate_by_name=True)


class GridEntryModel(BaseModel):
    position: int
    number: str
    driver: str
    class_name: str = Field(alias="className")
    class_label: str = Field(alias="classLabel")
    original_class: str = Field(alias="originalClass")
    best_time: str = Field(alias="bestTime")
    second_best: str = Field(alias="secondBest")
    points: Optional[float] = None
    source: str
    best_time_source: str = Field(alias="bestTimeSource")
    tied: bool

    model_config = ConfigDict(populate_by_name=True)


class GridWaveModel(BaseModel):
    wave_number: int = Field(alias="waveNumber")
    start_type: StartType = Field(alias="startType")
    description: str
    empty_positions: int = Field(alias="emptyPositions")
    empty_slots: List[int] = Field(alias="emptySlots")
    modified: bool
    entries: List[GridEntryModel]

    model_config = ConfigDict(populate_by_name=True)


class GridResponse(BaseModel):
    waves: List[GridWaveModel]


class MutationResponse(BaseModel):
    applied: bool
    grid: GridResponse


class MoveEntryPayload(BaseModel):
    from_wave: int = Field(alias="fromWave")  # 1-based wave numbers, 0-based entry indices
    from_index: int = Field(alias="fromIndex")
    to_wave: int = Field(alias="toWave")
    to_index: int = Field(alias="toIndex")

    model_config = ConfigDict(populate_by_name=True)


class EntryTargetPayload(BaseModel):
    wave_number: int = Field(alias="waveNumber")
    entry_index: int = Field(alias="entryIndex")

    model_config = ConfigDict(populate_by_name=True)


class ClassTargetPayload(BaseModel):
    wave_number: int = Field(alias="waveNumber")
    class_name: str = Field(alias="className")

    model_config = ConfigDict(populate_by_name=True)


@lru_cache(maxsize=1)
def store() -> GridStore:
    return GridStore()


def require_editor() -> GridEditor:
    editor = store().editor
    if editor is None:
        raise HTTPException(status_code=404, detail="No grid has been built yet")
    return editor


def _file_summary(parsed: ParsedFile) -> FileSummaryModel:
    return FileSummaryModel(
        fileName=parsed.file_name,
        kind=parsed.kind,
        entries=len(parsed.entries),
        fields=sorted(parsed.fields),
        warnings=parsed.warnings,
    )


def _time_model(record: Optional[TimeRecord]) -> Optional[TimeModel]:
    if record is None:
        return None
    return TimeModel(time=record.time, seconds=record.seconds, source=record.source)


def _driver_model(driver: DriverRecord) -> DriverModel:
    return DriverModel(
        key=driver.key,
        name=driver.name,
        number=driver.number,
        className=driver.class_name,
        files=[
            ContributionModel(
                source=c.source,
                className=c.class_name,
                bestTime=c.best_time,
                secondBest=c.second_best,
                speed=c.speed,
                secondSpeed=c.second_speed,
                points=c.points,
                position=c.position,
                positionInClass=c.position_in_class,
            )
            for c in driver.contributions
        ],
        fileCount=driver.file_count,
        bestOverallTime=_time_model(driver.best_overall_time),
        secondBestOverallTime=_time_model(driver.second_best_overall_time),
        totalPoints=driver.total_points,
        averagePoints=driver.average_points,
        bestPosition=driver.best_position,
        averagePosition=driver.average_position,
        bestPositionInClass=driver.best_position_in_class,
        averagePositionInClass=driver.average_position_in_class,
    )


def _wave_list() -> WaveListResponse:
    drivers = store().drivers
    return WaveListResponse(
        waves=[_wave_model(config) for config in store().wave_configs],
        sortOptions=available_sort_options(drivers),
        tieBreakerOptions=available_tie_breakers(drivers),
    )


def _wave_model(config: WaveConfig) -> WaveConfigModel:
    return WaveConfigModel(
        waveNumber=config.wave_number,
        startType=config.start_type,
        classes=list(config.classes),
        sortBy=config.sort_by,
        tieBreakers=list(config.tie_breakers),
        gridOrder=config.grid_order,
        inverted=config.inverted,
        invertAll=config.invert_all,
        invertCount=config.invert_count,
        emptyPositions=config.empty_positions,
        carCount=car_count_in_wave(config, store().drivers),
        description=describe_wave(config),
    )


def _grid_response(editor: GridEditor) -> GridResponse:
    positions: Dict[int, List[int]] = {}
    empty_slots: Dict[int, List[int]] = {}
    for slot in number_grid(editor.waves):
        target = positions if slot.entry is not None else empty_slots
        target.setdefault(slot.wave_index, []).append(slot.position)

    waves: List[GridWaveModel] = []
    for wave_index, wave in enumerate(editor.waves):
        tied = editor.tied_positions(wave_index)
        wave_positions = positions.get(wave_index, [])
        waves.append(
            GridWaveModel(
                waveNumber=wave_index + 1,
                startType=wave.config.start_type,
                description=describe_wave(wave.config),
                emptyPositions=wave.empty_positions,
                emptySlots=empty_slots.get(wave_index, []),
                modified=editor.is_wave_modified(wave_index),
                entries=[
                    GridEntryModel(
                        position=wave_positions[index],
                        number=entry.number,
                        driver=entry.driver,
                        className=entry.class_name,
                        classLabel=editor.merged_class_label(wave_index, entry.class_name),
                        originalClass=entry.original_class,
                        bestTime=entry.best_time,
                        secondBest=entry.second_best,
                        points=entry.points,
                        source=entry.source,
                        bestTimeSource=entry.best_time_source,
                        tied=index in tied,
                    )
                    for index, entry in enumerate(wave.entries)
                ],
            )
        )
    return GridResponse(waves=waves)


def _mutation(applied: bool) -> MutationResponse:
    return MutationResponse(applied=applied, grid=_grid_response(require_editor()))


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/reference")
def reference() -> dict:
    return {
        "startTypes": [item.value for item in StartType],
        "sortOptions": [item.value for item in SortBy],
        "tieBreakers": [item.value for item in TieBreaker],
        "gridOrders": [item.value for item in GridOrder],
        "maxWaves": store().max_waves,
    }


@app.get("/files", response_model=FileListResponse)
def list_files():
    return FileListResponse(files=[_file_summary(parsed) for parsed in store().files])


@app.post("/files", response_model=FileSummaryModel, status_code=201)
def upload_file(payload: FileUploadPayload):
    try:
        parsed = store().add_file(payload.file_name, payload.content)
    except FileParseError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except Exception:
        logger.exception("Unexpected failure while reading %s", payload.file_name)
        raise
    return _file_summary(parsed)


@app.delete("/files/{file_name}", response_model=FileListResponse)
def remove_file(file_name: str):
    try:
        store().remove_file(file_name)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=f"Unknown file '{file_name}'") from exc
    return list_files()


@app.delete("/files", response_model=FileListResponse)
def remove_all_files():
    store().remove_all_files()
    return list_files()


@app.get("/drivers", response_model=DriverListResponse)
def drivers():
    roster = store().drivers
    return DriverListResponse(
        drivers=[_driver_model(driver) for driver in roster],
        issues=validate_drivers(roster) if roster else [],
    )


@app.get("/classes", response_model=ClassListResponse)
def classes():
    counts = car_counts_by_class(store().drivers)
    owners = {
        class_name: config.wave_number
        for config in store().wave_configs
        for class_name in config.classes
    }
    return ClassListResponse(
        classes=[
            ClassSummaryModel(name=name, cars=counts.get(name, 0), waveNumber=owners.get(name))
            for name in store().classes()
        ]
    )


@app.get("/waves", response_model=WaveListResponse)
def list_waves():
    return _wave_list()


@app.post("/waves", response_model=WaveListResponse, status_code=201)
def set_wave_count(payload: WaveCountPayload):
    try:
        store().set_wave_count(payload.wave_count, payload.default_wave_spacing)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return _wave_list()


def _wave_index(wave_number: int) -> int:
    if not 1 <= wave_number <= len(store().wave_configs):
        raise HTTPException(status_code=404, detail=f"Unknown wave {wave_number}")
    return wave_number - 1


@app.patch("/waves/{wave_number}", response_model=WaveConfigModel)
def update_wave(wave_number: int, payload: WaveUpdatePayload):
    index = _wave_index(wave_number)
    # An explicit null leaves the setting as it is.
    changes = {key: value for key, value in payload.model_dump(exclude_unset=True).items() if value is not None}
    for key in ("classes", "tie_breakers"):
        if key in changes:
            changes[key] = tuple(changes[key])
    try:
        config = store().update_wave(index, **changes)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return _wave_model(config)


@app.post("/waves/{wave_number}/assign-all", response_model=WaveConfigModel)
def assign_all_classes(wave_number: int):
    index = _wave_index(wave_number)
    try:
        config = store().assign_all_classes(index)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return _wave_model(config)


@app.put("/waves/{wave_number}/classes/{class_name}", response_model=WaveConfigModel)
def assign_class(wave_number: int, class_name: str):
    index = _wave_index(wave_number)
    try:
        config = store().assign_class(index, class_name)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return _wave_model(config)


@app.delete("/waves/{wave_number}/classes/{class_name}", response_model=WaveConfigModel)
def unassign_class(wave_number: int, class_name: str):
    index = _wave_index(wave_number)
    return _wave_model(store().unassign_class(index, class_name))


@app.get("/waves/{wave_number}/available-classes")
def available_classes(wave_number: int) -> dict:
    index = _wave_index(wave_number)
    taken = assigned_classes(store().wave_configs, exclude_index=index)
    return {"classes": [name for name in store().classes() if name not in taken]}


@app.post("/grid", response_model=GridResponse, status_code=201)
def build_grid():
    try:
        editor = store().build_grid()
    except GridBuildError as exc:
        raise HTTPException(status_code=400, detail={"message": str(exc), "stage": exc.stage}) from exc
    return _grid_response(editor)


@app.get("/grid", response_model=GridResponse)
def current_grid():
    return _grid_response(require_editor())


@app.post("/grid/entries/move", response_model=MutationResponse)
def move_entry(payload: MoveEntryPayload):
    editor = require_editor()
    applied = editor.move_entry(payload.from_wave - 1, payload.from_index, payload.to_wave - 1, payload.to_index)
    return _mutation(applied)


@app.post("/grid/entries/move-to-start", response_model=MutationResponse)
def move_to_start_of_wave(payload: EntryTargetPayload):
    return _mutation(require_editor().move_to_start_of_wave(payload.wave_number - 1, payload.entry_index))


@app.post("/grid/entries/move-to-end", response_model=MutationResponse)
def move_to_end_of_wave(payload: EntryTargetPayload):
    return _mutation(require_editor().move_to_end_of_wave(payload.wave_number - 1, payload.entry_index))


@app.post("/grid/entries/move-to-end-of-class", response_model=MutationResponse)
def move_to_end_of_class(payload: EntryTargetPayload):
    return _mutation(require_editor().move_to_end_of_class(payload.wave_number - 1, payload.entry_index))


@app.post("/grid/classes/move-up", response_model=MutationResponse)
def move_class_up(payload: ClassTargetPayload):
    return _mutation(require_editor().move_class_up(payload.wave_number - 1, payload.class_name))


@app.post("/grid/classes/move-down", response_model=MutationResponse)
def move_class_down(payload: ClassTargetPayload):
    return _mutation(require_editor().move_class_down(payload.wave_number - 1, payload.class_name))


@app.post("/grid/classes/merge-with-previous", response_model=MutationResponse)
def merge_class_with_previous(payload: ClassTargetPayload):
    return _mutation(require_editor().merge_class_with_previous(payload.wave_number - 1, payload.class_name))


@app.post("/grid/waves/{wave_number}/combine-with-previous", response_model=MutationResponse)
def combine_with_previous_wave(wave_number: int):
    return _mutation(require_editor().combine_with_previous_wave(wave_number - 1))


@app.post("/grid/waves/{wave_number}/reset", response_model=MutationResponse)
def reset_wave(wave_number: int):
    return _mutation(require_editor().reset_wave(wave_number - 1))


@app.post("/grid/reset", response_model=MutationResponse)
def reset_grid():
    require_editor().reset_grid()
    return _mutation(True)


@app.delete("/session")
def start_new_grid() -> dict[str, str]:
    store().start_new_grid()
    return {"status": "cleared"}
