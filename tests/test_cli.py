from factories import make_event, make_tournament
from pfms.models import Team, User, UserRole


class TestUserCommands:

    def test_create_admin(self, app):
        runner = app.test_cli_runner()

        result = runner.invoke(args=[
            'user', 'create', '--email', 'Jefa@Example.com', '--name', 'Jefa', '--password', 'Secreta123',
        ])

        assert 'User created successfully!' in result.output
        with app.app_context():
            user = User.query.filter_by(email='jefa@example.com').one()
            assert user.role == UserRole.ADMIN
            assert user.check_password('Secreta123')

    def test_duplicate_email(self, app):
        runner = app.test_cli_runner()
        args = ['user', 'create', '--email', 'jefa@example.com', '--name', 'Jefa', '--password', 'x']
        runner.invoke(args=args)

        result = runner.invoke(args=args)

        assert 'already exists' in result.output

    def test_set_password(self, app):
        runner = app.test_cli_runner()
        runner.invoke(args=['user', 'create', '--email', 'jefa@example.com', '--name', 'Jefa', '--password', 'x'])

        result = runner.invoke(args=['user', 'set-password', '--email', 'jefa@example.com', '--password', 'nueva'])

        assert 'Password updated.' in result.output
        with app.app_context():
            assert User.query.filter_by(email='jefa@example.com').one().check_password('nueva')


class TestTeamCommands:

    def test_create_team_with_account(self, app):
        runner = app.test_cli_runner()

        result = runner.invoke(args=[
            'team', 'create', '--slug', 'Norte', '--email', 'norte@example.com',
            '--name', 'Club Norte', '--password', 'Secreta123',
        ])

        assert 'Team created successfully!' in result.output
        with app.app_context():
            team = Team.query.filter_by(slug='norte').one()
            assert team.user.role == UserRole.TEAM
            assert team.display_name == 'Club Norte'

    def test_admin_account_cannot_own_team(self, app):
        runner = app.test_cli_runner()
        runner.invoke(args=['user', 'create', '--email', 'jefa@example.com', '--name', 'Jefa', '--password', 'x'])

        result = runner.invoke(args=[
            'team', 'create', '--slug', 'norte', '--email', 'jefa@example.com', '--name', 'Club Norte',
        ])

        assert 'not a team account' in result.output


class TestExportCommand:

    def test_writes_workbook(self, app, tmp_path):
        with app.app_context():
            event = make_event()
            make_tournament(event)
            event_id = event.id

        result = app.test_cli_runner().invoke(args=[
            'export', 'registrations', '--event', event_id, '--output-dir', str(tmp_path),
        ])

        assert result.exit_code == 0
        files = list(tmp_path.glob('Inscripciones_*.xlsx'))
        assert len(files) == 1

    def test_unknown_event(self, app, tmp_path):
        result = app.test_cli_runner().invoke(args=[
            'export', 'registrations', '--event', 'missing', '--output-dir', str(tmp_path),
        ])

        assert result.exit_code == 1
        assert 'Error:' in result.output
