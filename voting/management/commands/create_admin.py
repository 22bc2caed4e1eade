from django.core.management.base import BaseCommand, CommandError

from voting.accounts import create_user_with_profile
from voting.exceptions import ApiError
from voting.models import Profile


class Command(BaseCommand):
    help = "Create an administrator account (auth user + admin profile)."

    def add_arguments(self, parser):
        parser.add_argument("--email", required=True)
        parser.add_argument("--document", required=True, help="Identity document number.")
        parser.add_argument("--full-name", required=True)
        parser.add_argument("--password", required=True)
        parser.add_argument(
            "--staff",
            action="store_true",
            help="Also grant access to the Django admin site.",
        )

    def handle(self, *args, **options):
        if len(options["password"]) < 8:
            raise CommandError("Password must be at least 8 characters.")

        try:
            profile = create_user_with_profile(
                role=Profile.Role.ADMIN,
                full_name=options["full_name"].strip(),
                document=options["document"].strip(),
                email=options["email"].strip().lower(),
                password=options["password"],
            )
        except ApiError as e:
            raise CommandError(e.message)

        if options["staff"]:
            user = profile.user
            user.is_staff = True
            user.is_superuser = True
            user.save(update_fields=["is_staff", "is_superuser"])

        self.stdout.write(self.style.SUCCESS(f"Admin created: {profile.full_name} <{profile.user.email}>"))
