"""
单元测试：探针数据转换

测试覆盖：
- 延迟分桶：阈值边界、兜底区间
- 滑动平均：窗口下标截断、缺失指标
- 按天分组：延迟区间直方图、发布成功率
- 纯函数：重复计算结果一致、不修改输入
"""

import pytest

from registry_status.transforms import (
    build_transforms,
    classify_interval,
    day_key,
    group_per_day,
    interval_buckets,
    make_percentage,
    make_time_unit,
    moving_average,
    publish_buckets,
    published_state,
)

from conftest import DAY_MS, HOUR_MS, local_ms, make_sample


class TestClassifyInterval:
    """延迟分桶测试"""

    def test_first_matching_threshold(self, intervals):
        """测试：返回第一个阈值 >= lag 的区间"""
        assert classify_interval(intervals, 0) == 0
        assert classify_interval(intervals, 60_000) == 0
        assert classify_interval(intervals, 60_001) == 1
        assert classify_interval(intervals, DAY_MS) == 2

    def test_exceeds_all_thresholds(self, intervals):
        """测试：超过所有阈值时落入最后一个区间"""
        assert classify_interval(intervals, DAY_MS * 30) == 2

    def test_empty_intervals(self):
        """测试：空区间表属于配置错误"""
        with pytest.raises(ValueError):
            classify_interval([], 10)


class TestDayKey:
    """自然日计算测试"""

    def test_truncates_to_local_midnight(self):
        assert day_key(local_ms(2026, 1, 20, 13, 45)) == local_ms(2026, 1, 20)
        assert day_key(local_ms(2026, 1, 20)) == local_ms(2026, 1, 20)

    def test_different_days(self):
        assert day_key(local_ms(2026, 1, 20, 23, 59)) != day_key(local_ms(2026, 1, 21, 0, 1))


class TestMovingAverage:
    """滑动平均测试"""

    def test_clamped_window(self):
        """测试：窗口下标小于 0 时重复第一个样本，窗口不缩小"""
        samples = [
            make_sample("ping", 1000, latency=10),
            make_sample("ping", 2000, latency=20),
            make_sample("ping", 3000, latency=30),
        ]

        points = moving_average(2)(samples)

        # i=0: [0, 0] / i=1: [0, 0] / i=2: [0, 1]
        assert [p["values"]["latency"] for p in points] == [10, 10, 15]
        assert [p["t"] for p in points] == [1000, 2000, 3000]

    def test_same_length_as_input(self):
        samples = [make_sample("ping", i * 1000, latency=i) for i in range(12)]

        for n in (1, 3, 5, 20):
            points = moving_average(n)(samples)
            assert len(points) == len(samples)
            assert [p["t"] for p in points] == [s.start for s in samples]

    def test_trailing_window(self):
        samples = [make_sample("ping", i, latency=v) for i, v in enumerate([1, 2, 3, 4, 5, 6])]

        points = moving_average(3)(samples)

        # i=5 取 [2, 3, 4] 下标的值 3, 4, 5
        assert points[5]["values"]["latency"] == pytest.approx(4.0)
        # i=3 取 [0, 1, 2] 下标
        assert points[3]["values"]["latency"] == pytest.approx(2.0)

    def test_default_window_is_five(self):
        samples = [make_sample("ping", i, latency=v) for i, v in enumerate([0, 0, 0, 0, 0, 10, 10])]

        points = moving_average()(samples)

        # i=6 取下标 1..5
        assert points[6]["values"]["latency"] == pytest.approx(2.0)

    def test_multiple_metrics(self):
        samples = [
            make_sample("ping", 1, latency=10, lookup=100),
            make_sample("ping", 2, latency=30, lookup=300),
        ]

        point = moving_average(2)(samples)[1]

        assert point["values"] == {"latency": 10, "lookup": 100}

    def test_skips_missing_and_non_numeric_metrics(self):
        """测试：缺失或非数值指标被跳过，不产生 NaN"""
        samples = [
            make_sample("ping", 1, latency=10, status="ok"),
            make_sample("ping", 2, latency=None),
            make_sample("ping", 3, latency=40, cached=True),
        ]

        points = moving_average(2)(samples)

        assert "status" not in points[0]["values"]
        assert points[1]["values"] == {}
        # i=2 窗口为 [0, 1]，下标 1 无有效值
        assert points[2]["values"] == {"latency": 10}

    def test_empty_input(self):
        assert moving_average(3)([]) == []

    def test_invalid_window(self):
        with pytest.raises(ValueError):
            moving_average(0)


class TestTimeUnit:
    """延迟区间直方图测试"""

    def _transform(self, intervals):
        return group_per_day(make_time_unit(intervals, DAY_MS), lambda: interval_buckets(intervals))

    def test_single_bucket_per_sample(self, intervals):
        day = local_ms(2026, 1, 20)
        samples = [
            make_sample("delta", day + 1000, lag={"mean": 30_000}, modules=["express"]),
            make_sample("delta", day + 2000, lag={"mean": 120_000}, modules=["react"]),
        ]

        points = self._transform(intervals)(samples)

        assert len(points) == 3
        assert all(p["t"] == day for p in points)

        minute, hour, catch_all = [p["values"] for p in points]
        assert minute["type"] == "minute"
        assert minute["n"] == 1
        assert minute["days"] == pytest.approx(30_000 / DAY_MS)
        assert minute["modules"] == ["express"]
        assert hour["n"] == 1
        assert hour["days"] == pytest.approx(120_000 / DAY_MS)
        assert catch_all["n"] == 0
        assert catch_all["days"] == 0

    def test_catch_all_bucket(self, intervals):
        """测试：超过所有阈值的延迟落入最后一个区间"""
        day = local_ms(2026, 1, 20)
        samples = [make_sample("delta", day + 1000, lag={"mean": DAY_MS * 3}, modules=["lodash"])]

        points = self._transform(intervals)(samples)

        assert points[-1]["values"]["type"] == "day"
        assert points[-1]["values"]["n"] == 1
        assert points[-1]["values"]["modules"] == ["lodash"]
        assert sum(p["values"]["n"] for p in points) == 1

    def test_module_dedup(self, intervals):
        """测试：同一区间同一天的模块名只出现一次（区分大小写）"""
        day = local_ms(2026, 1, 20)
        samples = [
            make_sample("delta", day + 1000, lag={"mean": 1000}, modules=["express", "Express"]),
            make_sample("delta", day + 2000, lag={"mean": 2000}, modules=["express", "koa"]),
        ]

        points = self._transform(intervals)(samples)

        assert points[0]["values"]["modules"] == ["express", "Express", "koa"]

    def test_samples_without_lag_are_ignored(self, intervals):
        day = local_ms(2026, 1, 20)
        samples = [
            make_sample("delta", day + 1000, modules=["express"]),
            make_sample("delta", day + 2000, lag={}),
        ]

        points = self._transform(intervals)(samples)

        assert sum(p["values"]["n"] for p in points) == 0
        assert all(p["values"]["modules"] == [] for p in points)

    def test_counts_never_exceed_samples_per_day(self, intervals):
        day1 = local_ms(2026, 1, 20)
        day2 = local_ms(2026, 1, 21)
        samples = [
            make_sample("delta", day1 + 1000, lag={"mean": 10}),
            make_sample("delta", day1 + 2000),
            make_sample("delta", day2 + 1000, lag={"mean": HOUR_MS * 2}),
            make_sample("delta", day1 + 3000, lag={"mean": DAY_MS * 2}),
        ]

        points = self._transform(intervals)(samples)

        totals = {}
        for p in points:
            totals[p["t"]] = totals.get(p["t"], 0) + p["values"]["n"]
        assert totals[day1] <= 3
        assert totals[day1] == 2
        assert totals[day2] == 1
        # 天的顺序按首次出现
        assert [p["t"] for p in points] == [day1] * 3 + [day2] * 3

    def test_fresh_state_per_call(self, intervals):
        """测试：每天、每次调用都使用新的初始状态"""
        day = local_ms(2026, 1, 20)
        samples = [make_sample("delta", day + 1000, lag={"mean": 10}, modules=["a"])]
        transform = self._transform(intervals)

        first = transform(samples)
        first[0]["values"]["modules"].append("mutated")
        second = transform(samples)

        assert second[0]["values"]["modules"] == ["a"]
        assert second[0]["values"]["n"] == 1


class TestPercentage:
    """发布成功率测试"""

    def _transform(self, clock, interval=HOUR_MS):
        return group_per_day(make_percentage(interval, DAY_MS, clock), publish_buckets)

    def test_failure_lower_tracks_success(self, noon):
        """测试：失败槽位的 lower 在成功样本到达后才等于成功率"""
        failure = make_sample("publish", local_ms(2026, 1, 20, 10, 0), published=False)
        success = make_sample("publish", local_ms(2026, 1, 20, 11, 0), published=True)
        transform = self._transform(noon)

        before = transform([failure])
        assert before[0]["values"]["type"] == "failure"
        assert before[0]["values"]["total"] == 10
        assert before[0]["values"]["n"] == 1
        assert before[0]["values"]["percentage"] == 10
        assert before[0]["values"]["lower"] == 0

        after = transform([failure, success])
        failure_slot, success_slot = after[0]["values"], after[1]["values"]
        assert failure_slot["total"] == success_slot["total"] == 11
        assert success_slot["n"] == 1
        assert success_slot["percentage"] == 9
        assert failure_slot["lower"] == success_slot["percentage"]

    def test_past_day_uses_full_day(self, noon):
        """测试：今天以前的样本按一整天计算 total"""
        sample = make_sample("publish", local_ms(2026, 1, 18, 9, 0), published=1)

        points = self._transform(noon)([sample])

        assert points[0]["t"] == local_ms(2026, 1, 18)
        assert points[1]["values"]["total"] == 24
        assert points[1]["values"]["percentage"] == 4

    def test_percentage_bounds_and_monotonic(self, noon):
        start = local_ms(2026, 1, 20, 2, 0)
        samples = [make_sample("publish", start + i, published=True) for i in range(5)]
        transform = self._transform(noon)

        previous = 0
        for count in range(1, len(samples) + 1):
            success = transform(samples[:count])[1]["values"]
            assert 0 <= success["percentage"] <= 100
            assert success["percentage"] >= previous
            previous = success["percentage"]

        assert previous == 100

    def test_zero_total(self, noon):
        """测试：当天刚开始（total 为 0）时百分比不越界"""
        sample = make_sample("publish", local_ms(2026, 1, 20, 0, 1), published=True)

        success = self._transform(noon)([sample])[1]["values"]

        assert success["total"] == 0
        assert success["percentage"] == 100

    @pytest.mark.parametrize("value,expected", [
        (True, 1), (1, 1), ("1", 1), ("true", 1),
        (False, 0), (0, 0), ("0", 0), (None, 0), ("", 0),
    ])
    def test_published_state(self, value, expected):
        assert published_state(value) == expected


class TestBuildTransforms:
    """转换表测试"""

    def test_idempotent(self, intervals, noon):
        """测试：同一快照重复计算结果一致，输入不被修改"""
        transforms = build_transforms(intervals, HOUR_MS, DAY_MS, window=3, clock=noon)
        day = local_ms(2026, 1, 20)
        samples = {
            "ping": [make_sample("ping", day + i, latency=i * 3) for i in range(6)],
            "delta": [make_sample("delta", day + i, lag={"mean": i * 50_000}, modules=[str(i % 2)]) for i in range(6)],
            "publish": [make_sample("publish", day + HOUR_MS * (i + 1), published=i % 2) for i in range(6)],
        }

        for sample_type, data in samples.items():
            before = [s.model_dump() for s in data]
            first = transforms[sample_type](data)
            second = transforms[sample_type](data)
            assert first == second
            assert [s.model_dump() for s in data] == before
