from conftest import API_KEY, SERVER, episode_item

EPISODES = "/Shows/s1/Episodes"
SEASONS = "/Shows/s1/Seasons"


def serve_season(http, season_id, items):
    http.add("GET", EPISODES, {"Items": items}, params={"seasonId": season_id})


def serve_seasons(http, seasons):
    http.add("GET", SEASONS, {"Items": seasons})


async def test_next_episode_in_same_season_needs_no_season_lookup(resolver, http):
    serve_season(http, "season1", [episode_item("e3", 3), episode_item("e1", 1), episode_item("e2", 2)])

    episode = await resolver.resolve_next(SERVER, "s1", "season1", 2, API_KEY)

    assert episode.id == "e3"
    assert episode.index_number == 3
    assert episode.season_number is None
    assert episode.play_url == f"{SERVER}/Items/e3/Download?api_key={API_KEY}"
    assert http.count("GET", SEASONS) == 0
    assert http.count("GET", EPISODES) == 1


async def test_episode_request_asks_for_media_sources(resolver, http):
    serve_season(http, "season1", [episode_item("e1", 1)])

    await resolver.fetch_season_episodes(SERVER, "s1", "season1", API_KEY)

    [call] = http.matching("GET", EPISODES)
    assert call.params["seasonId"] == "season1"
    assert "MediaSources" in call.params["fields"]
    assert "CanDownload" in call.params["fields"]


async def test_unplayable_episodes_are_skipped(resolver, http):
    serve_season(http, "season1", [
        episode_item("e1", 1),
        episode_item("e2", 2, MediaSources=[]),
        episode_item("e3", 3, CanDownload=False),
        episode_item("e4", 4, CanDownload=True),
    ])

    episodes = await resolver.fetch_season_episodes(SERVER, "s1", "season1", API_KEY)

    assert [e.id for e in episodes] == ["e1", "e4"]


async def test_episode_fetch_failure_yields_empty_list(resolver, http):
    http.add("GET", EPISODES, None, status=500)

    assert await resolver.fetch_season_episodes(SERVER, "s1", "season1", API_KEY) == []


async def test_rolls_over_into_next_season(resolver, http):
    serve_season(http, "season1", [episode_item("e1", 1), episode_item("e2", 2)])
    serve_season(http, "season2", [episode_item("e22", 2, "Second"), episode_item("e21", 1, "Opener")])
    serve_seasons(http, [
        {"Id": "season2", "Name": "Season 2", "IndexNumber": 2},
        {"Id": "specials", "Name": "Specials"},
        {"Id": "season1", "Name": "Season 1", "IndexNumber": 1},
    ])

    episode = await resolver.resolve_next(SERVER, "s1", "season1", 2, API_KEY)

    assert episode.id == "e21"
    assert episode.name == "Opener"
    assert episode.season_number == 2
    assert http.count("GET", SEASONS) == 1
    assert http.count("GET", EPISODES) == 2


async def test_last_episode_of_last_season_ends_series(resolver, http):
    serve_season(http, "season2", [episode_item("e21", 1), episode_item("e22", 2)])
    serve_seasons(http, [
        {"Id": "season1", "IndexNumber": 1},
        {"Id": "season2", "IndexNumber": 2},
    ])

    assert await resolver.resolve_next(SERVER, "s1", "season2", 2, API_KEY) is None


async def test_unknown_season_ends_series(resolver, http):
    serve_season(http, "orphan", [episode_item("e1", 1)])
    serve_seasons(http, [{"Id": "season1", "IndexNumber": 1}, {"Id": "season2", "IndexNumber": 2}])

    assert await resolver.resolve_next(SERVER, "s1", "orphan", 1, API_KEY) is None


async def test_empty_next_season_ends_series(resolver, http):
    serve_season(http, "season1", [episode_item("e1", 1)])
    serve_season(http, "season2", [])
    serve_seasons(http, [{"Id": "season1", "IndexNumber": 1}, {"Id": "season2", "IndexNumber": 2}])

    assert await resolver.resolve_next(SERVER, "s1", "season1", 1, API_KEY) is None


async def test_season_list_failure_ends_series(resolver, http):
    serve_season(http, "season1", [episode_item("e1", 1)])
    http.add("GET", SEASONS, None, status=503)

    assert await resolver.resolve_next(SERVER, "s1", "season1", 1, API_KEY) is None


async def test_seasons_without_id_are_skipped(resolver, http):
    serve_season(http, "season1", [episode_item("e1", 1)])
    serve_season(http, "season3", [episode_item("e31", 1, "Later")])
    serve_seasons(http, [
        {"Id": "season1", "IndexNumber": 1},
        {"Name": "Broken", "IndexNumber": 2},
        {"Id": "season3", "IndexNumber": 3},
    ])

    episode = await resolver.resolve_next(SERVER, "s1", "season1", 1, API_KEY)

    assert episode.id == "e31"
    assert episode.season_number == 3
