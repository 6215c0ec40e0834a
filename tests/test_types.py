from lnms.reportdb.types import DataPoint, Event, Query, QueryReceive, Response


def test_event_round_trip():
    event = Event(object_id=7, counter_id=2, timestamp=1700000000, value=1.5)
    assert Event.from_dict(event.to_dict()) == event


def test_event_uses_wire_keys():
    event = Event.from_dict({"objectId": 4, "counterId": 1, "timestamp": 10, "value": 99})
    assert event.to_dict() == {"objectId": 4, "counterId": 1, "timestamp": 10, "value": 99}


def test_query_maps_from_and_to():
    query = Query.from_dict(
        {"counter_id": 1, "object_ids": [3, 4], "from": 100, "to": 200,
         "aggregation": "AVG", "group_by_objects": True, "interval": 60}
    )
    assert query == Query(counter_id=1, object_ids=[3, 4], start=100, end=200,
                          aggregation="AVG", group_by_objects=True, interval=60)


def test_query_missing_object_ids_is_empty():
    query = Query.from_dict({"counter_id": 1, "object_ids": None, "from": 1, "to": 2})
    assert query.object_ids == []
    assert query.aggregation == ""


def test_query_receive_nests_query():
    request = QueryReceive.from_dict({"request_id": 42, "query_request": {"counter_id": 3, "from": 5, "to": 6}})
    assert request.request_id == 42
    assert request.query.counter_id == 3
    assert (request.query.start, request.query.end) == (5, 6)


def test_response_omits_empty_error():
    assert Response(request_id=1, data=2.0).to_dict() == {"request_id": 1, "data": 2.0}


def test_response_with_error_has_null_data():
    assert Response(request_id=5, error="boom").to_dict() == {"request_id": 5, "error": "boom", "data": None}


def test_response_converts_nested_points():
    response = Response(request_id=3, data={9: [DataPoint(10, 1.0), DataPoint(20, "x")]})
    assert response.to_dict()["data"] == {
        9: [{"timestamp": 10, "value": 1.0}, {"timestamp": 20, "value": "x"}]
    }