import argparse
import datetime

from algorithms import EnergyCalculator, WeightConverter
from db import (
    BodyweightRepository,
    BurnRepository,
    CaloriesRepository,
    DailyEnergyRepository,
    ExerciseRepository,
    ProfileRepository,
    WorkoutSessionRepository,
)
from energy_service import EnergyService
from workout_log import SPLITS, build_set_rows


def _demo_sets(exercises):
    entries = []
    for ex in exercises:
        for set_number in (1, 2):
            entry = {"exercise_id": ex["id"], "set_number": set_number}
            if ex["metric_type"] == "DURATION":
                entry["seconds"] = 60
            else:
                entry.update(reps=10, weight=60, unit="kg")
            entries.append(entry)
    return entries


def demo_data(db_path: str, user_id: str) -> None:
    """Populate the database with two weeks of demo logs if empty."""
    bodyweights = BodyweightRepository(db_path)
    if bodyweights.fetch_latest(user_id):
        print("Database already contains logs")
        return
    calories = CaloriesRepository(db_path)
    burns = BurnRepository(db_path)
    profiles = ProfileRepository(db_path)
    profiles.save(
        user_id,
        first_name="Demo",
        sex="male",
        birth_date="1995-06-15",
        height_cm=180.0,
        activity_level="moderate",
    )
    today = datetime.date.today()
    for offset in range(14):
        day = (today - datetime.timedelta(days=offset)).isoformat()
        bodyweights.log(user_id, day, 80.0 + offset * 0.1)
        calories.log(user_id, day, 900.0, 1500.0)
        burns.log(user_id, day, 400.0, "demo")
    exercises = ExerciseRepository(db_path)
    exercises.ensure_defaults(user_id)
    workouts = WorkoutSessionRepository(db_path)
    for offset, split in enumerate(SPLITS):
        split_exercises = exercises.fetch_for_split(user_id, split)
        rows = build_set_rows(split_exercises, _demo_sets(split_exercises))
        day = (today - datetime.timedelta(days=offset * 2)).isoformat()
        workouts.save_sets(user_id, day, split, rows)
    energy = EnergyService(
        bodyweights, calories, burns, profiles, DailyEnergyRepository(db_path)
    )
    energy.recompute_from_date_forward(user_id, (today - datetime.timedelta(days=13)).isoformat())
    energy.recompute_maintenance_current(user_id)
    print("Demo data inserted")


def main(argv=None) -> None:
    parser = argparse.ArgumentParser(description="Utility commands")
    sub = parser.add_subparsers(dest="cmd", required=True)

    bmr = sub.add_parser("bmr")
    bmr.add_argument("--sex", choices=EnergyCalculator.SEXES, required=True)
    bmr.add_argument("--weight", type=float, required=True)
    bmr.add_argument("--height", type=float, required=True)
    bmr.add_argument("--age", type=int, required=True)

    maint = sub.add_parser("maintenance")
    maint.add_argument("--sex", choices=EnergyCalculator.SEXES, required=True)
    maint.add_argument("--weight", type=float, required=True)
    maint.add_argument("--height", type=float, required=True)
    maint.add_argument("--birth-date", required=True)
    maint.add_argument(
        "--activity", choices=list(EnergyCalculator.ACTIVITY_MULTIPLIERS), default="sedentary"
    )

    bmi = sub.add_parser("bmi")
    bmi.add_argument("--weight", type=float, required=True)
    bmi.add_argument("--height", type=float, required=True)

    conv = sub.add_parser("convert")
    conv.add_argument("--weight", type=float, required=True)
    conv.add_argument("--unit", choices=WeightConverter.UNITS, required=True)

    demo = sub.add_parser("demo")
    demo.add_argument("--db", default="trainlytics.db")
    demo.add_argument("--user", default="demo-user")

    serve = sub.add_parser("serve")
    serve.add_argument("--db", default="trainlytics.db")
    serve.add_argument("--yaml", default="settings.yaml")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)

    args = parser.parse_args(argv)

    if args.cmd == "bmr":
        value = EnergyCalculator.bmr_mifflin_st_jeor(args.sex, args.weight, args.height, args.age)
        print(f"BMR: {value:.0f} kcal")
    elif args.cmd == "maintenance":
        value = EnergyCalculator.maintenance_calories_from_profile(
            args.sex, args.weight, args.height, args.birth_date, args.activity
        )
        if value is None:
            print("Invalid birth date")
        else:
            print(f"Maintenance: {value:.0f} kcal")
    elif args.cmd == "bmi":
        value = EnergyCalculator.bmi(args.weight, args.height)
        if value is None:
            print("Weight and height must be positive")
        else:
            print(f"BMI: {value:.1f} ({EnergyCalculator.bmi_category(value)})")
    elif args.cmd == "convert":
        if args.unit == "kg":
            print(f"{args.weight} kg = {WeightConverter.kg_to_lb(args.weight)} lb")
        else:
            print(f"{args.weight} lb = {WeightConverter.lb_to_kg(args.weight)} kg")
    elif args.cmd == "demo":
        demo_data(args.db, args.user)
    elif args.cmd == "serve":
        import uvicorn
        from rest_api import TrainlyticsAPI

        uvicorn.run(TrainlyticsAPI(args.db, args.yaml).app, host=args.host, port=args.port)


if __name__ == "__main__":
    main()
