"""Static exercise catalog.

Maps catalog exercise ids to the body zone they target and the muscles they
load. Sessions reference entries through ``ExerciseLog.exercise_id``; custom
exercises have no id and resolve to nothing.
"""

from collections.abc import Mapping
from dataclasses import dataclass

UNKNOWN_ZONE = "Unknown"


@dataclass(frozen=True)
class CatalogExercise:
    id: str
    name: str
    target_zone: str
    primary_muscles: tuple[str, ...]
    secondary_muscles: tuple[str, ...] = ()
    equipment: str = "other"


_ENTRIES: tuple[CatalogExercise, ...] = (
    # chest
    CatalogExercise("chest_bench_press_bar", "Bench Press (Barbell)", "chest", ("chest",), ("triceps", "deltoids"), "barbell"),
    CatalogExercise("chest_bench_press_db", "Bench Press (Dumbbell)", "chest", ("chest",), ("triceps", "deltoids"), "dumbbell"),
    CatalogExercise("chest_incline_press_bar", "Incline Press (Barbell)", "chest", ("chest", "deltoids"), ("triceps",), "barbell"),
    CatalogExercise("chest_dips", "Chest Dips", "chest", ("chest", "triceps"), ("deltoids",), "bodyweight"),
    CatalogExercise("chest_pushups", "Push-ups", "chest", ("chest",), ("triceps", "abs"), "bodyweight"),
    CatalogExercise("chest_fly_db", "Dumbbell Fly", "chest", ("chest",), ("deltoids",), "dumbbell"),
    CatalogExercise("chest_fly_cable_high", "Cable Crossover (High)", "chest", ("chest",), (), "cable"),
    CatalogExercise("chest_press_machine", "Chest Press Machine", "chest", ("chest",), ("triceps",), "machine"),
    # back
    CatalogExercise("back_deadlift", "Deadlift (Conventional)", "back", ("lower-back", "gluteal", "hamstring"), ("trapezius", "forearm", "quadriceps", "lats"), "barbell"),
    CatalogExercise("back_pullups", "Pull-ups", "back", ("lats", "upper-back"), ("biceps", "forearm"), "bodyweight"),
    CatalogExercise("back_chinups", "Chin-ups", "back", ("lats", "biceps"), ("upper-back",), "bodyweight"),
    CatalogExercise("back_lat_pulldown", "Lat Pulldown", "back", ("lats",), ("biceps",), "cable"),
    CatalogExercise("back_bent_row_bar", "Bent Over Row (Barbell)", "back", ("upper-back", "lats"), ("biceps", "lower-back"), "barbell"),
    CatalogExercise("back_bent_row_db", "One-Arm Dumbbell Row", "back", ("lats", "upper-back"), ("biceps", "obliques"), "dumbbell"),
    CatalogExercise("back_seated_row", "Seated Cable Row", "back", ("upper-back", "lats"), ("biceps",), "cable"),
    CatalogExercise("back_shrugs_bar", "Barbell Shrug", "back", ("trapezius",), ("forearm",), "barbell"),
    CatalogExercise("back_hyperextension", "Back Extension", "back", ("lower-back",), ("gluteal", "hamstring"), "bodyweight"),
    # legs
    CatalogExercise("legs_squat_bar_back", "Back Squat (Barbell)", "legs", ("quadriceps", "gluteal"), ("lower-back", "adductors", "calves"), "barbell"),
    CatalogExercise("legs_squat_bar_front", "Front Squat", "legs", ("quadriceps", "upper-back"), ("gluteal", "abs"), "barbell"),
    CatalogExercise("legs_squat_goblet", "Goblet Squat", "legs", ("quadriceps",), ("gluteal", "abs"), "dumbbell"),
    CatalogExercise("legs_leg_press", "Leg Press (45 degrees)", "legs", ("quadriceps",), ("gluteal", "hamstring"), "machine"),
    CatalogExercise("legs_bulgarian_split", "Bulgarian Split Squat", "legs", ("quadriceps", "gluteal"), ("hamstring",), "dumbbell"),
    CatalogExercise("legs_extension", "Leg Extension", "legs", ("quadriceps",), (), "machine"),
    CatalogExercise("legs_rdl_bar", "Romanian Deadlift (Barbell)", "legs", ("hamstring", "gluteal"), ("lower-back", "forearm"), "barbell"),
    CatalogExercise("legs_curl_lying", "Lying Leg Curl", "legs", ("hamstring",), ("calves",), "machine"),
    CatalogExercise("glute_hip_thrust_bar", "Hip Thrust (Barbell)", "legs", ("gluteal",), ("hamstring",), "barbell"),
    CatalogExercise("calves_standing_raise", "Standing Calf Raise", "legs", ("calves",), (), "machine"),
    # shoulders
    CatalogExercise("shoulders_ohp_bar", "Overhead Press (Barbell)", "shoulders", ("deltoids",), ("triceps", "upper-back"), "barbell"),
    CatalogExercise("shoulders_press_db", "Seated Dumbbell Press", "shoulders", ("deltoids",), ("triceps",), "dumbbell"),
    CatalogExercise("shoulders_lateral_raise", "Lateral Raise", "shoulders", ("deltoids",), ("trapezius",), "dumbbell"),
    CatalogExercise("back_face_pull", "Face Pull", "shoulders", ("deltoids", "upper-back"), ("trapezius",), "cable"),
    # arms
    CatalogExercise("arms_curl_bar", "Barbell Curl", "arms", ("biceps",), ("forearm",), "barbell"),
    CatalogExercise("arms_curl_hammer", "Hammer Curl", "arms", ("biceps", "forearm"), (), "dumbbell"),
    CatalogExercise("arms_pushdown_cable", "Triceps Pushdown", "arms", ("triceps",), (), "cable"),
    CatalogExercise("arms_skullcrusher", "Skull Crusher", "arms", ("triceps",), (), "barbell"),
    # core
    CatalogExercise("core_plank", "Plank", "core", ("abs",), ("obliques",), "bodyweight"),
    CatalogExercise("core_hanging_leg_raise", "Hanging Leg Raise", "core", ("abs",), ("obliques", "forearm"), "bodyweight"),
    CatalogExercise("core_cable_crunch", "Cable Crunch", "core", ("abs",), (), "cable"),
    CatalogExercise("core_russian_twist", "Russian Twist", "core", ("obliques",), ("abs",), "bodyweight"),
    # full body / conditioning
    CatalogExercise("full_clean_and_press", "Clean and Press", "full_body", ("quadriceps", "deltoids", "trapezius"), ("gluteal", "triceps"), "barbell"),
    CatalogExercise("full_kettlebell_swing", "Kettlebell Swing", "full_body", ("gluteal", "hamstring"), ("lower-back", "deltoids"), "other"),
    CatalogExercise("cardio_rowing", "Rowing Machine", "cardio", ("upper-back", "quadriceps"), ("biceps", "lats"), "machine"),
)

EXERCISE_CATALOG: Mapping[str, CatalogExercise] = {entry.id: entry for entry in _ENTRIES}


def lookup_exercise(
    exercise_id: str | None,
    catalog: Mapping[str, CatalogExercise] = EXERCISE_CATALOG,
) -> CatalogExercise | None:
    if not exercise_id:
        return None
    return catalog.get(exercise_id)


def resolve_target_zone(
    exercise_id: str | None,
    catalog: Mapping[str, CatalogExercise] = EXERCISE_CATALOG,
) -> str:
    entry = lookup_exercise(exercise_id, catalog)
    return entry.target_zone if entry is not None else UNKNOWN_ZONE
